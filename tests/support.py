import datetime
import unittest

from app import create_app
from database import db
import rentals

TEST_CONFIG = {
    "TESTING": True,
    "SQLALCHEMY_DATABASE_URI": "sqlite://",
    "REDIS_URL": "",
    "STAFF_ROSTER": ["Balu", "Mani"],
    "DEFAULT_ADVANCE_AMOUNT": 5000.0,
    "LOG_LEVEL": "WARNING",
}


def at(year, month, day, hour=10, minute=0):
    return datetime.datetime(year, month, day, hour, minute)


class AppTestCase(unittest.TestCase):
    """Fresh in-memory database and app context for every test."""

    def setUp(self):
        self.app = create_app(TEST_CONFIG)
        self.ctx = self.app.app_context()
        self.ctx.push()
        db.create_all()
        self.client = self.app.test_client()

    def tearDown(self):
        db.session.remove()
        db.drop_all()
        self.ctx.pop()

    def monthly(self, now, **overrides):
        data = {
            'vehicle_number': 'tn09ab1234',
            'vehicle_description': 'Swift Dzire',
            'owner_name': 'Ravi Kumar',
            'contact_number': '9876543210',
            'parking_type': 'private',
            'rental_type': 'monthly',
            'rent_price': 3000,
            'lot_number': '3A',
            'transaction_mode': 'Cash',
            'received_by': 'Balu',
        }
        data.update(overrides)
        return rentals.create_vehicle(data, now=now)

    def daily(self, now, days=10, **overrides):
        data = {
            'vehicle_number': 'ka01mn4321',
            'vehicle_description': 'Innova',
            'owner_name': 'Suresh',
            'contact_number': '9123456780',
            'parking_type': 'open',
            'rental_type': 'daily',
            'rent_price': 150,
            'number_of_days': days,
            'transaction_mode': 'UPI',
            'received_by': 'Mani',
        }
        data.update(overrides)
        return rentals.create_vehicle(data, now=now)
