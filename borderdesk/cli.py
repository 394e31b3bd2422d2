import sys
from datetime import date, timedelta

from .database import SessionLocal, commit, init_db
from .models.application import Application
from .models.user import Actor, UserRole
from .models.verification import DocumentType
from .services.applications import ApplicationWorkflowService
from .services.auth import AuthService
from .services.verification import VerificationReviewService

DEMO_ADMIN = Actor(user_id="admin-1", user_name="Demo Admin", role=UserRole.ADMIN)
DEMO_STAFF = Actor(user_id="staff-1", user_name="Demo Staff", role=UserRole.STAFF)

DEMO_APPLICATIONS = [
    ("Aisyah Rahman", "aisyah@example.com", "Johor Bahru", "Singapore", 0.93),
    ("Daniel Lim", "daniel@example.com", "Bukit Kayu Hitam", "Hat Yai", 0.78),
    ("Priya Nair", "priya@example.com", "Padang Besar", "Songkhla", 0.52),
]


def seed_demo_data():
    init_db()
    db = SessionLocal()
    try:
        if db.query(Application).first():
            print("Demo data already exists. No changes made.")
            return

        workflow = ApplicationWorkflowService()
        review = VerificationReviewService(workflow=workflow)
        start = date.today() + timedelta(days=7)
        for name, email, origin, destination, confidence in DEMO_APPLICATIONS:
            application = workflow.create_application(
                db,
                DEMO_ADMIN,
                customer_name=name,
                customer_email=email,
                route_origin=origin,
                route_destination=destination,
                travel_start=start,
                travel_end=start + timedelta(days=5),
                total_price_cents=15000,
            )
            outcome = review.ingest(
                db,
                DEMO_STAFF,
                application.id,
                DocumentType.DRIVERS_LICENSE.value,
                confidence,
                extracted_fields=[{"label": "Full Name", "value": name, "confidence": confidence}],
            )
            print(
                f"Created {application.tracking_id} for {name}: "
                f"{outcome.verification.band} ({confidence:.2f}), status {application.status}"
            )
        commit(db)
    finally:
        db.close()


def issue_token(role: str = "admin"):
    actor = DEMO_ADMIN if UserRole(role) == UserRole.ADMIN else DEMO_STAFF
    print(AuthService.create_access_token(actor))


if __name__ == "__main__":
    command = sys.argv[1] if len(sys.argv) > 1 else "seed"
    if command == "seed":
        seed_demo_data()
    elif command == "token":
        issue_token(*sys.argv[2:3])
    else:
        print(f"Unknown command: {command}. Use 'seed' or 'token [admin|staff]'.")
        sys.exit(1)
