"""
Management command to seed the library with sample data.

Usage: python manage.py seed_data [--users N] [--documents N] [--comments N] [--clear]

Everything is created through the library facade, so seeding works the
same against the memory and database backends and leaves document
ratings and counters consistent.
"""

import random

from django.contrib.auth.hashers import make_password
from django.core.management.base import BaseCommand

from library.exceptions import ConstraintViolation
from library.services import get_library

SUBJECTS = [
    "Mathematics",
    "Computer Science",
    "Physics",
    "Chemistry",
    "Biology",
    "History",
    "Economics",
]

TITLES = [
    "Lecture notes: {subject} week {n}",
    "{subject} midterm review",
    "Summary of {subject} chapter {n}",
    "{subject} problem set solutions {n}",
    "Cheat sheet for {subject} final",
]

UNIVERSITIES = ["State University", "Tech Institute", "City College"]

COMMENT_TEXTS = [
    "Thanks, this saved my exam!",
    "Section 3 has a typo in the second formula.",
    "Very clear explanations.",
    "Could you upload the next chapter too?",
    "Exactly what I was looking for.",
    "The diagrams are really helpful.",
]


class Command(BaseCommand):
    help = 'Seed the library with sample users, documents, ratings and comments'

    def add_arguments(self, parser):
        parser.add_argument(
            '--users',
            type=int,
            default=10,
            help='Number of users to create'
        )
        parser.add_argument(
            '--documents',
            type=int,
            default=30,
            help='Number of documents to create'
        )
        parser.add_argument(
            '--comments',
            type=int,
            default=60,
            help='Number of comments to create'
        )
        parser.add_argument(
            '--clear',
            action='store_true',
            help='Remove all existing data before seeding'
        )

    def handle(self, *args, **options):
        library = get_library()

        if options['clear']:
            self.stdout.write('Clearing existing data...')
            library.storage.flush()
            library.cache.clear()

        self.stdout.write('Creating users...')
        users = self._create_users(library, options['users'])

        self.stdout.write('Creating documents...')
        documents = self._create_documents(library, users, options['documents'])

        self.stdout.write('Rating and bookmarking...')
        ratings = self._rate_documents(library, users, documents)

        self.stdout.write('Creating comments...')
        comments = self._create_comments(library, users, documents, options['comments'])

        self.stdout.write('Following users...')
        follows = self._follow_users(library, users)

        self.stdout.write(self.style.SUCCESS(
            f'Successfully created:\n'
            f'  - {len(users)} users\n'
            f'  - {len(documents)} documents\n'
            f'  - {ratings} ratings\n'
            f'  - {len(comments)} comments\n'
            f'  - {follows} follows'
        ))

    def _create_users(self, library, count):
        users = []
        for i in range(count):
            username = f'student{i+1}'
            user = library.users.get_by_username(username)
            if user is None:
                user = library.users.create(
                    username=username,
                    email=f'{username}@example.com',
                    password=make_password('password123'),
                    university=random.choice(UNIVERSITIES),
                    major=random.choice(SUBJECTS),
                )
            users.append(user)
        return users

    def _create_documents(self, library, users, count):
        documents = []
        if not users:
            return documents

        for i in range(count):
            subject = random.choice(SUBJECTS)
            file_type = random.choice(['pdf', 'pdf', 'image', 'text'])
            extension = {'pdf': 'pdf', 'image': 'png', 'text': 'txt'}[file_type]
            file_name = f'notes-{i+1}.{extension}'

            document = library.documents.create(
                uploader_id=random.choice(users).id,
                title=random.choice(TITLES).format(subject=subject, n=random.randint(1, 12)),
                subject=subject,
                file_type=file_type,
                file_name=file_name,
                file_size=random.randint(20_000, 5_000_000),
                file_path=f'uploads/{file_name}',
                description=f'Notes for {subject}.',
                tags=random.sample(['exam', 'lecture', 'summary', 'homework', 'lab'], k=2),
                is_public=random.random() > 0.1,
            )
            for _ in range(random.randint(0, 150)):
                library.documents.increment_views(document.id)
            for _ in range(random.randint(0, 120)):
                library.documents.record_download(document.id)
            documents.append(document)
        return documents

    def _rate_documents(self, library, users, documents):
        count = 0
        for document in documents:
            raters = random.sample(users, k=random.randint(0, len(users)))
            for rater in raters:
                library.ratings.submit(
                    document.id,
                    rater.id,
                    random.choices([2, 3, 4, 5], weights=[1, 2, 4, 4])[0],
                    review=None,
                )
                count += 1
                if random.random() < 0.2 and not library.bookmarks.is_bookmarked(document.id, rater.id):
                    library.bookmarks.create(document.id, rater.id)
        return count

    def _create_comments(self, library, users, documents, count):
        comments = []
        if not users or not documents:
            return comments

        for _ in range(count):
            document = random.choice(documents)

            # 30% chance of replying to an existing root on the same document
            parent_id = None
            roots = [c for c in comments if c.document_id == document.id and c.is_root]
            if roots and random.random() < 0.3:
                parent_id = random.choice(roots).id

            comment = library.comments.create(
                document.id,
                random.choice(users).id,
                random.choice(COMMENT_TEXTS),
                parent_id=parent_id,
            )
            comments.append(comment)
        return comments

    def _follow_users(self, library, users):
        count = 0
        for user in users:
            others = [other for other in users if other.id != user.id]
            for target in random.sample(others, k=min(3, len(others))):
                try:
                    library.follows.follow(user.id, target.id)
                except ConstraintViolation:
                    continue  # Already following from an earlier run
                count += 1
        return count
