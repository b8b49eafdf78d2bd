"""Seed script to create or update a business with default booking settings.

Usage:
    python -m app.scripts.seed_business --id=nab-consultancy --name="NAB Consultancy" --admin-email=ops@example.com
"""

import argparse
import asyncio

from app.core.config import settings
from app.core.database import async_session
from app.models.business import Business

DEFAULT_SLOT_DURATIONS = [
    {"duration": 30, "price": 500},
    {"duration": 60, "price": 900},
]

DEFAULT_WEEKLY_SCHEDULE = {
    day: {"enabled": day != "sunday", "start": "10:00", "end": "18:00"}
    for day in ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
}


async def create_or_update_business(
    business_id: str,
    name: str,
    admin_email: str | None = None,
    prefix: str | None = None,
    timezone: str | None = None,
) -> Business:
    """Create the business, or update name/contact/prefix/timezone if it already exists.

    Booking settings (durations, schedule) are only set on creation.
    """
    async with async_session() as db:
        business = await db.get(Business, business_id)

        if business:
            print(f"Business {business_id} already exists. Updating...")
            business.name = name
            if admin_email:
                business.admin_email = admin_email
            if prefix:
                business.reference_prefix = prefix
            if timezone:
                business.timezone = timezone
        else:
            print(f"Creating business {business_id}...")
            business = Business(
                id=business_id,
                name=name,
                admin_email=admin_email,
                reference_prefix=prefix or settings.REFERENCE_PREFIX,
                timezone=timezone or settings.BUSINESS_TIMEZONE,
                is_active=True,
                advance_booking_days=15,
                slot_durations=DEFAULT_SLOT_DURATIONS,
                weekly_schedule=DEFAULT_WEEKLY_SCHEDULE,
                off_days=[],
            )
            db.add(business)

        await db.commit()
        print(f"Business {business_id} ready (prefix {business.reference_prefix}, tz {business.timezone}).")
        return business


def main():
    parser = argparse.ArgumentParser(description="Create or update a ConsultDesk business")
    parser.add_argument("--id", default=settings.DEFAULT_BUSINESS_ID, help="Business slug")
    parser.add_argument("--name", required=True, help="Display name")
    parser.add_argument("--admin-email", help="Address that receives admin copies of booking emails")
    parser.add_argument("--prefix", help="Reference id prefix, e.g. NAB")
    parser.add_argument("--timezone", help="IANA timezone, e.g. Asia/Kolkata")
    args = parser.parse_args()

    asyncio.run(create_or_update_business(args.id, args.name, args.admin_email, args.prefix, args.timezone))


if __name__ == "__main__":
    main()
