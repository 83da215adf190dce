from __future__ import annotations

import os
from getpass import getpass

from filevault import create_app
from filevault.bootstrap import bootstrap_defaults, get_role
from filevault.extensions import db
from filevault.models import AccountStatus, RoleName, User


def main() -> None:
    app = create_app()

    with app.app_context():
        db.create_all()
        bootstrap_defaults(commit=True)

        email = os.getenv("ADMIN_EMAIL", "admin@example.com").strip().lower()
        password = os.getenv("ADMIN_PASSWORD")
        if not password:
            password = getpass("Admin password: ")

        admin_role = get_role(RoleName.ADMIN.value)
        if admin_role is None:
            raise RuntimeError("Admin role missing. Run migrations and bootstrap first.")

        user = User.query.filter_by(email=email).one_or_none()
        created = False
        if user is None:
            user = User(
                email=email,
                name=os.getenv("ADMIN_NAME", "Administrator"),
                storage_quota_bytes=app.config["DEFAULT_QUOTA_BYTES"],
                used_storage_bytes=0,
                is_active=True,
                account_status=AccountStatus.ACTIVE,
            )
            created = True

        user.set_password(password)
        if admin_role not in user.roles:
            user.roles.append(admin_role)

        db.session.add(user)
        db.session.commit()

        print(f"{'Created' if created else 'Updated'} admin user: {email}")


if __name__ == "__main__":
    main()
