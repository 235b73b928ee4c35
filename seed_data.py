import os
from decimal import Decimal
from sqlmodel import Session, select
from storefront.db.session import engine, create_db_and_tables
from storefront.core.security import get_password_hash
from storefront.models import Product, User

def seed_admin(session: Session):
    email = os.getenv("SEED_ADMIN_EMAIL", "admin@storefront.local")
    if session.exec(select(User).where(User.email == email)).first():
        print(f"Admin {email} already exists. Skipping.")
        return

    session.add(User(
        email=email,
        name="Catalog Admin",
        password_hash=get_password_hash(os.getenv("SEED_ADMIN_PASSWORD", "change-me-please")),
        is_superuser=True,
    ))
    session.commit()
    print(f"Created admin user {email}")

def seed_products(session: Session):
    # Check if products already exist to avoid duplicates
    existing_products = session.exec(select(Product)).all()
    if existing_products:
        print(f"Database already contains {len(existing_products)} products. Skipping seed.")
        return

    print("Seeding initial products...")
    products = [
        Product(
            name="Mechanical Keyboard",
            description="Tenkeyless keyboard with hot-swappable switches.",
            price=Decimal("129.00"),
            stock=40,
            category="Electronics",
            image_url="/images/keyboard.webp"
        ),
        Product(
            name="Wireless Mouse",
            description="Ergonomic mouse with a 70 day battery.",
            price=Decimal("49.50"),
            stock=120,
            category="Electronics",
            image_url="/images/mouse.webp"
        ),
        Product(
            name="Standing Desk",
            description="Electric height-adjustable desk, 160x80 cm.",
            price=Decimal("549.00"),
            stock=8,
            category="Furniture",
            image_url="/images/desk.webp"
        ),
        Product(
            name="Desk Lamp",
            description="Dimmable LED lamp with USB-C charging port.",
            price=Decimal("39.99"),
            stock=75,
            category="Furniture",
            image_url="/images/lamp.webp"
        ),
        Product(
            name="Notebook Set",
            description="Three dotted A5 notebooks.",
            price=Decimal("14.00"),
            stock=300,
            category="Stationery",
            image_url="/images/notebooks.webp"
        )
    ]

    for product in products:
        session.add(product)

    session.commit()
    print(f"Successfully seeded {len(products)} products!")

if __name__ == "__main__":
    print("Creating database and tables...")
    create_db_and_tables()
    with Session(engine) as session:
        seed_admin(session)
        seed_products(session)
