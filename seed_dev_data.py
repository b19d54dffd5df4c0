"""Seed the development database with a demo organisation."""

from app.backend.src.core.security import create_access_token
from app.backend.src.db import get_engine, session_scope
from app.backend.src.models.base import Base
from app.backend.src.services.seed import seed_organisation


def main() -> None:
    """Create tables (if needed) and ensure the demo organisation exists."""

    engine = get_engine()
    Base.metadata.create_all(bind=engine)

    with session_scope() as session:
        result = seed_organisation(session)
        session.flush()

        print("Development data ready.")
        supplier_status = "created" if result.supplier_created else "unchanged"
        print(f"Supplier ({supplier_status}): {result.supplier.name} [id={result.supplier.id}]")
        print(f"Users created: {result.users_created}")
        print()
        for role, user in result.users.items():
            print(f"{role:<17} {user.email:<32} id={user.id}")
            print(f"  token: {create_access_token(user.id)}")


if __name__ == "__main__":
    main()
