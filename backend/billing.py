"""
Arrears for lapsed rentals. Read-only: nothing here writes to a vehicle.
"""
import datetime

from errors import ValidationError
from models import Vehicle, INACTIVE
from periods import MONTHLY


def compute_outstanding(vehicle, today=None):
    """
    Days overdue count the first day after the period as day 1. Monthly
    renters owe one flat month; daily renters owe rent for every day overdue.
    Active vehicles owe nothing.
    """
    today = today or datetime.date.today()
    if isinstance(today, datetime.datetime):
        today = today.date()

    if vehicle.status != INACTIVE:
        return {'days_overdue': 0, 'due_amount': 0.0}

    if vehicle.end_date is None:
        raise ValidationError(f"Vehicle {vehicle.id} has no end date; cannot price arrears")

    arrears_start = vehicle.end_date.date() + datetime.timedelta(days=1)
    days_overdue = max(0, (today - arrears_start).days + 1)

    if vehicle.rental_type == MONTHLY:
        due_amount = vehicle.rent_price
    else:
        due_amount = vehicle.rent_price * days_overdue

    return {'days_overdue': days_overdue, 'due_amount': due_amount}


def outstanding_vehicles(today=None):
    """Every inactive vehicle with what it owes, oldest lapse first."""
    rows = []
    for vehicle in Vehicle.query.filter_by(status=INACTIVE).order_by(Vehicle.end_date).all():
        data = vehicle.to_dict()
        data.update(compute_outstanding(vehicle, today))
        rows.append(data)
    return rows
