from database import db
import datetime

# This file contains the schema for the rental database.
# Vehicles are the live records; Revenue and Advance are append-only logs
# keyed by vehicle number, so they outlive a removed vehicle.

ACTIVE = 'active'
INACTIVE = 'inactive'
STATUSES = (ACTIVE, INACTIVE)

PARKING_TYPES = ('private', 'open')
VEHICLE_TYPES = ('own', 'tboard')
TRANSACTION_MODES = ('Cash', 'UPI')

NEW = 'New'
EXTENSION = 'Extension'

DEPOSIT = 'deposit'
REFUND = 'refund'


def _iso(value):
    return value.isoformat() if value else None


class Vehicle(db.Model):
    """
    One rented slot for one vehicle. end_date is always the end of the
    current billing period, never the end of the whole tenancy.
    """
    id = db.Column(db.Integer, primary_key=True)
    vehicle_number = db.Column(db.String(20), nullable=False, index=True)
    vehicle_description = db.Column(db.String(200), nullable=True)
    vehicle_type = db.Column(db.String(10), nullable=False, default='own')

    # None means open parking without an assigned lot
    lot_number = db.Column(db.String(10), nullable=True)

    owner_name = db.Column(db.String(100), nullable=False)
    contact_number = db.Column(db.String(20), nullable=False)

    parking_type = db.Column(db.String(10), nullable=False)
    rental_type = db.Column(db.String(10), nullable=False)

    # Per month for monthly rentals, per day for daily ones
    rent_price = db.Column(db.Float, nullable=False)
    number_of_days = db.Column(db.Integer, nullable=True)
    advance_amount = db.Column(db.Float, nullable=False, default=0)
    additional_days = db.Column(db.Integer, nullable=False, default=0)

    start_date = db.Column(db.DateTime, nullable=False, default=datetime.datetime.now)
    end_date = db.Column(db.DateTime, nullable=True, index=True)
    status = db.Column(db.String(10), nullable=False, default=ACTIVE, index=True)
    transaction_mode = db.Column(db.String(10), nullable=False, default='Cash')

    # Bumped on every ORM write; a stale writer gets StaleDataError
    version = db.Column(db.Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def to_dict(self):
        return {
            'id': self.id,
            'vehicle_number': self.vehicle_number,
            'vehicle_description': self.vehicle_description,
            'vehicle_type': self.vehicle_type,
            'lot_number': self.lot_number,
            'owner_name': self.owner_name,
            'contact_number': self.contact_number,
            'parking_type': self.parking_type,
            'rental_type': self.rental_type,
            'rent_price': self.rent_price,
            'number_of_days': self.number_of_days,
            'advance_amount': self.advance_amount,
            'additional_days': self.additional_days,
            'start_date': _iso(self.start_date),
            'end_date': _iso(self.end_date),
            'status': self.status,
            'transaction_mode': self.transaction_mode,
            'version': self.version
        }

    def __repr__(self):
        return f"<Vehicle {self.id} {self.vehicle_number} ({self.status})>"


class Revenue(db.Model):
    """
    Rent actually received: one row per intake or extension payment.
    """
    id = db.Column(db.Integer, primary_key=True)
    vehicle_number = db.Column(db.String(20), nullable=False, index=True)
    vehicle_description = db.Column(db.String(200), nullable=True)
    lot_number = db.Column(db.String(10), nullable=True)
    rental_type = db.Column(db.String(10), nullable=False)
    rent_price = db.Column(db.Float, nullable=False)
    number_of_days = db.Column(db.Integer, nullable=True)

    # Calendar month (1-12) and year the money was received in
    month = db.Column(db.Integer, nullable=False)
    year = db.Column(db.Integer, nullable=False)

    revenue_amount = db.Column(db.Float, nullable=False)
    transaction_date = db.Column(db.DateTime, nullable=False, default=datetime.datetime.now)
    transaction_type = db.Column(db.String(10), nullable=False)
    transaction_mode = db.Column(db.String(10), nullable=False)
    received_by = db.Column(db.String(50), nullable=True)

    def to_dict(self):
        return {
            'id': self.id,
            'vehicle_number': self.vehicle_number,
            'vehicle_description': self.vehicle_description,
            'lot_number': self.lot_number,
            'rental_type': self.rental_type,
            'rent_price': self.rent_price,
            'number_of_days': self.number_of_days,
            'month': self.month,
            'year': self.year,
            'revenue_amount': self.revenue_amount,
            'transaction_date': _iso(self.transaction_date),
            'transaction_type': self.transaction_type,
            'transaction_mode': self.transaction_mode,
            'received_by': self.received_by
        }


class Advance(db.Model):
    """
    Security deposit ledger. Deposits and refunds are separate rows and are
    never edited; a correction is a new row.
    """
    id = db.Column(db.Integer, primary_key=True)
    entry_type = db.Column(db.String(10), nullable=False, default=DEPOSIT)
    vehicle_number = db.Column(db.String(20), nullable=False, index=True)
    vehicle_description = db.Column(db.String(200), nullable=True)
    lot_number = db.Column(db.String(10), nullable=True)
    parking_type = db.Column(db.String(10), nullable=False)
    transaction_mode = db.Column(db.String(10), nullable=False)
    received_by = db.Column(db.String(50), nullable=True)

    # Deposit side
    start_date = db.Column(db.DateTime, nullable=True)
    advance_amount = db.Column(db.Float, nullable=False, default=0)

    # Refund side
    refund_date = db.Column(db.DateTime, nullable=True)
    advance_refund = db.Column(db.Float, nullable=True)

    month = db.Column(db.Integer, nullable=False)
    year = db.Column(db.Integer, nullable=False)

    @property
    def entry_date(self):
        return self.refund_date if self.entry_type == REFUND else self.start_date

    def to_dict(self):
        return {
            'id': self.id,
            'entry_type': self.entry_type,
            'vehicle_number': self.vehicle_number,
            'vehicle_description': self.vehicle_description,
            'lot_number': self.lot_number,
            'parking_type': self.parking_type,
            'transaction_mode': self.transaction_mode,
            'received_by': self.received_by,
            'start_date': _iso(self.start_date),
            'advance_amount': self.advance_amount,
            'refund_date': _iso(self.refund_date),
            'advance_refund': self.advance_refund,
            'month': self.month,
            'year': self.year
        }
