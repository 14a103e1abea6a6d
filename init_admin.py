#!/usr/bin/env python3
"""
Initialize default staff accounts for the clinic system.
Run with: python3 init_admin.py
"""
from app import create_app
from app.extensions import db
from app.models import User, Role, Department

# Default accounts to create
DEFAULT_USERS = [
    {
        'username': 'admin',
        'email': 'admin@clinic.com',
        'password': 'admin123',
        'full_name': 'Clinic Administrator',
        'role': Role.ADMIN,
    },
    {
        'username': 'doctor1',
        'email': 'doctor1@clinic.com',
        'password': 'doctor123',
        'full_name': 'John Doctor',
        'role': Role.DOCTOR,
        'specialty': Department.NEUROLOGY,
    },
    {
        'username': 'doctor2',
        'email': 'doctor2@clinic.com',
        'password': 'doctor123',
        'full_name': 'Mary Doctor',
        'role': Role.DOCTOR,
        'specialty': Department.CARDIOLOGY,
    },
    {
        'username': 'staff1',
        'email': 'staff1@clinic.com',
        'password': 'staff123',
        'full_name': 'Bob Reception',
        'role': Role.STAFF,
    },
]


def create_users():
    """Create default staff users"""
    app = create_app()

    with app.app_context():
        print("=" * 60)
        print("Initializing Staff Accounts")
        print("=" * 60)
        print()

        created_count = 0

        for user_data in DEFAULT_USERS:
            username = user_data['username']

            # Check if user already exists
            existing = User.query.filter(
                (User.username == username) | (User.email == user_data['email'])
            ).first()
            if existing:
                print(f"  - User '{username}' already exists (skipping)")
                continue

            user = User(
                username=username,
                email=user_data['email'],
                full_name=user_data['full_name'],
                role=user_data['role'],
                specialty=user_data.get('specialty'),
                is_active=True
            )
            user.set_password(user_data['password'])

            db.session.add(user)
            created_count += 1
            print(f"  ✓ Created: {username} ({user_data['role'].value}) - Password: {user_data['password']}")

        db.session.commit()

        print()
        print("=" * 60)
        print(f"✅ Created {created_count} new user(s)")
        print("=" * 60)
        print("\n⚠️  IMPORTANT: Change passwords after first login!")
        print("\nAvailable Roles:")
        for role in Role:
            print(f"  - {role.value}")


if __name__ == '__main__':
    create_users()
