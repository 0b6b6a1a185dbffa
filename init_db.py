import argparse
import logging

import auth
import models
from database import SessionLocal, engine
from permissions import Role

logger = logging.getLogger(__name__)


def create_departments(session, names):
    existing = {name for (name,) in session.query(models.Department.name)}
    created = 0
    for name in names:
        name = name.strip()
        if not name or name in existing:
            continue
        session.add(models.Department(name=name))
        existing.add(name)
        created += 1
    return created


def create_admin(session, full_name, email, password):
    if session.query(models.User).filter(models.User.email == email).first():
        return None
    admin = models.User(
        full_name=full_name,
        email=email,
        password=auth.hash_password(password),
        type=Role.ADMIN.value
    )
    session.add(admin)
    return admin


def init_db(departments=(), admin_email=None, admin_password=None, admin_name="Administrator"):
    models.Base.metadata.create_all(bind=engine)

    session = SessionLocal()
    try:
        created = create_departments(session, departments)
        admin = None
        if admin_email:
            admin = create_admin(session, admin_name, admin_email, admin_password)
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

    return created, admin is not None


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Create the college database tables and seed data")
    parser.add_argument(
        "--department",
        action="append",
        default=[],
        help="Department name to create (repeatable)",
    )
    parser.add_argument("--admin-email", help="Email of the bootstrap administrator")
    parser.add_argument("--admin-password", help="Password of the bootstrap administrator")
    parser.add_argument(
        "--admin-name",
        default="Administrator",
        help="Full name of the bootstrap administrator (default: Administrator)",
    )
    return parser.parse_args(argv)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    args = parse_args()
    if args.admin_email and not args.admin_password:
        raise SystemExit("--admin-password is required with --admin-email")

    departments, admin_created = init_db(
        departments=args.department,
        admin_email=args.admin_email,
        admin_password=args.admin_password,
        admin_name=args.admin_name,
    )
    logger.info("Tables ready, %d department(s) created", departments)
    if args.admin_email:
        logger.info("Administrator %s %s", args.admin_email, "created" if admin_created else "already exists")
