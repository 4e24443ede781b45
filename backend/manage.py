import asyncio
import traceback

import typer
from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

import blogapi.db_models  # noqa: F401

from blogapi.database import async_session_factory
from blogapi.users.models import User as UserModel, UserRole
from blogapi.users.schema import UserCreate
from blogapi.users.service import create_user, get_stats, get_user_by_username

cli = typer.Typer()

SEED_USERS = [
    {"username": "admin", "password": "admin123", "role": UserRole.ADMIN,
     "email": "admin@postmanagement.com", "full_name": "System Administrator"},
    {"username": "john_doe", "password": "password123", "role": UserRole.USER,
     "email": "john@example.com", "full_name": "John Doe"},
    {"username": "jane_smith", "password": "password123", "role": UserRole.USER,
     "email": "jane@example.com", "full_name": "Jane Smith"},
    {"username": "tech_writer", "password": "password123", "role": UserRole.USER,
     "email": "writer@techblog.com", "full_name": "Tech Writer"},
    {"username": "lifestyle_blogger", "password": "password123", "role": UserRole.USER,
     "email": "blogger@lifestyle.com", "full_name": "Lifestyle Blogger"},
]


async def create_admin_runner(username: str, email: str, password: str, full_name: str | None, db: AsyncSession):
    print("--- Admin User Creation ---")
    try:
        user_data = UserCreate(username=username, email=email, password=password, full_name=full_name)

        print(f"Creating admin user '{username}'...")
        admin_user: UserModel = await create_user(user_data=user_data, db=db, role=UserRole.ADMIN)

        print("\nAdmin user created successfully!")
        print(f"   ID: {admin_user.id}")
        print(f"   Username: {admin_user.username}")
        print(f"   Role: {admin_user.role.value}")

    except HTTPException as e:
        print(f"\nError creating admin user: {e.detail}")
        raise typer.Exit(code=1)
    except Exception as e:
        traceback.print_exc()
        print(f"\nError creating admin user: {e}")
        raise typer.Exit(code=1)
    finally:
        print("--- Task Finished ---")


@cli.command(name="create-admin")
def createadmin(
    username: str = typer.Option(..., "--username", "-u", help="Admin's username."),
    email: str = typer.Option(..., "--email", "-e", help="Admin's email address."),
    password: str = typer.Option(..., "--password", "-p", help="Admin's secure password."),
    full_name: str = typer.Option(None, "--full-name", "-n", help="Admin's full name."),
):
    """
    Creates a new user with 'admin' privileges in the database.
    """
    async def main():
        async with async_session_factory() as session:
            await create_admin_runner(username=username, email=email, password=password, full_name=full_name, db=session)

    asyncio.run(main())


@cli.command(name="seed-users")
def seed_users():
    """
    Seed the sample accounts (one admin and four regular users).
    Usernames that already exist are skipped.
    """
    async def runner():
        async with async_session_factory() as session:
            print("Starting user seeding process...")
            for entry in SEED_USERS:
                if await get_user_by_username(entry["username"], session):
                    print(f"User '{entry['username']}' already exists - skipping")
                    continue
                user_data = UserCreate(
                    username=entry["username"],
                    password=entry["password"],
                    email=entry["email"],
                    full_name=entry["full_name"],
                )
                await create_user(user_data=user_data, db=session, role=entry["role"])
                print(f"Created user: {entry['username']} ({entry['role'].value})")

            stats = await get_stats(session)
            print("User seeding completed.")
            print(f"   Total users: {stats.total}")
            print(f"   Admins: {stats.by_role.admin}")
            print(f"   Regular users: {stats.by_role.user}")

    asyncio.run(runner())


if __name__ == "__main__":
    cli()
