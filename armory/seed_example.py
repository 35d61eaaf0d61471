from datetime import datetime, timezone

from sqlalchemy import select

from armory.db import SessionLocal, engine
from armory.models import Base, MilitaryBase, User, UserRole
from armory.security.passwords import hash_password

BASES = [
    ('Fort Benning', 'Georgia'),
    ('Fort Jackson', 'South Carolina'),
    ('Fort Bragg', 'North Carolina'),
]


def seed() -> None:
    Base.metadata.create_all(bind=engine)
    with SessionLocal() as db:
        bases = {}
        for name, location in BASES:
            base = db.execute(select(MilitaryBase).where(MilitaryBase.name == name)).scalar_one_or_none()
            if not base:
                base = MilitaryBase(name=name, location=location)
                db.add(base)
                db.flush()
            bases[name] = base

        users = [
            ('admin@army.mil', 'admin123', 'General Admin', UserRole.ADMIN, None),
            ('commander@army.mil', 'commander123', 'Commander', UserRole.BASE_COMMANDER, bases['Fort Benning'].id),
            ('logistics@army.mil', 'logistics123', 'Logistics Officer', UserRole.LOGISTICS_OFFICER, bases['Fort Benning'].id),
            ('commander@jackson.mil', 'commander123', 'Commander Jackson', UserRole.BASE_COMMANDER, bases['Fort Jackson'].id),
        ]
        for email, password, name, role, base_id in users:
            user = db.execute(select(User).where(User.email == email)).scalar_one_or_none()
            if not user:
                db.add(
                    User(
                        email=email,
                        password_hash=hash_password(password),
                        name=name,
                        role=role,
                        base_id=base_id,
                        active=True,
                        updated_at=datetime.now(tz=timezone.utc),
                    )
                )

        db.commit()


if __name__ == '__main__':
    seed()
    print('Seed data inserted/verified.')
