import os
from decimal import Decimal
from sqlmodel import select
from app.db.session import session_scope, create_db_and_tables
from app.models.consultant import Consultant
from app.models.product import Product, Pack
from app.models.profile import Profile, ProfileRole
from app.services.auth import AuthService

def seed():
    print("Creating database and tables...")
    create_db_and_tables()

    with session_scope() as session:
        admin_email = os.getenv("SEED_ADMIN_EMAIL", "admin@example.com")
        if not session.exec(select(Profile).where(Profile.email == admin_email)).first():
            AuthService(session).register(
                admin_email,
                os.getenv("SEED_ADMIN_PASSWORD", "change-me"),
                full_name="Store Admin",
                role=ProfileRole.ADMIN,
            )
            print(f"Created admin {admin_email}")

        # Check if products already exist to avoid duplicates
        existing_products = session.exec(select(Product)).all()
        if existing_products:
            print(f"Database already contains {len(existing_products)} products. Skipping catalog seed.")
            return

        print("Seeding initial catalog...")
        products = [
            Product(
                name="Herbal Hair Oil",
                slug="herbal-hair-oil",
                description="Cold-pressed oil blend for scalp care.",
                current_price=Decimal("349.00"),
                stock=120,
                image_url="/images/hair-oil.webp"
            ),
            Product(
                name="Neem Face Wash",
                slug="neem-face-wash",
                description="Gentle daily cleanser with neem and tulsi.",
                current_price=Decimal("199.50"),
                stock=80,
                image_url="/images/face-wash.webp"
            ),
            Product(
                name="Sandalwood Soap",
                slug="sandalwood-soap",
                description="Handmade soap with pure sandalwood oil.",
                current_price=Decimal("99.00"),
                stock=300,
                image_url="/images/soap.webp"
            ),
        ]
        session.add_all(products)
        session.add(Pack(
            name="Daily Care Pack",
            description="Hair oil, face wash and soap together.",
            price=Decimal("599.00"),
            stock=40,
        ))
        session.add(Consultant(full_name="Asha Rao", email="asha@example.com", phone="+91 90000 00001"))
        session.commit()
        print(f"Successfully seeded {len(products)} products, 1 pack and 1 consultant!")

if __name__ == "__main__":
    seed()
