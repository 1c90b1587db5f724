"""
Dashboard figures. Pure summation over the other modules' outputs.
"""
import datetime
from collections import defaultdict

from flask import current_app

from database import db
from models import Vehicle, Revenue, Advance, ACTIVE, INACTIVE, PARKING_TYPES, DEPOSIT
from periods import MONTHLY, DAILY, RENTAL_TYPES, month_window
from billing import compute_outstanding
import ledger

# A customer is "premium" when they paid at least this multiple of the average
PREMIUM_MULTIPLIER = 2


def _ratio(part, whole):
    return round(part / whole, 4) if whole else 0.0


def vehicle_counts():
    vehicles = Vehicle.query.all()
    counts = {'total': len(vehicles)}
    for status in (ACTIVE, INACTIVE):
        counts[status] = sum(1 for v in vehicles if v.status == status)
    for parking_type in PARKING_TYPES:
        counts[parking_type] = sum(1 for v in vehicles if v.parking_type == parking_type)
    for rental_type in RENTAL_TYPES:
        counts[rental_type] = sum(1 for v in vehicles if v.rental_type == rental_type)
    return counts


def revenue_summary(month, year):
    stats = ledger.revenue_stats(month, year)
    return {
        'monthly_rental_revenue': stats[MONTHLY]['total_revenue'],
        'daily_rental_revenue': stats[DAILY]['total_revenue'],
        'total_revenue': sum(s['total_revenue'] for s in stats.values()),
        'transaction_count': sum(s['count'] for s in stats.values())
    }


def outstanding_summary(today=None):
    summary = {rental_type: {'due_amount': 0.0, 'vehicle_count': 0} for rental_type in RENTAL_TYPES}
    for vehicle in Vehicle.query.filter_by(status=INACTIVE).all():
        due = compute_outstanding(vehicle, today)
        summary[vehicle.rental_type]['due_amount'] += due['due_amount']
        summary[vehicle.rental_type]['vehicle_count'] += 1
    summary['total_due'] = sum(summary[t]['due_amount'] for t in RENTAL_TYPES)
    return summary


def staff_collections(month, year):
    """Revenue and deposits each staff member took in during the month."""
    first, last = month_window(month, year)
    collections = {
        name: {'revenue': 0.0, 'advance': 0.0}
        for name in current_app.config['STAFF_ROSTER']
    }

    revenue_rows = db.session.query(Revenue.received_by, db.func.sum(Revenue.revenue_amount)).filter(
        Revenue.month == first.month, Revenue.year == first.year, Revenue.received_by.isnot(None)
    ).group_by(Revenue.received_by).all()
    for name, total in revenue_rows:
        collections.setdefault(name, {'revenue': 0.0, 'advance': 0.0})['revenue'] = total or 0.0

    advance_rows = db.session.query(Advance.received_by, db.func.sum(Advance.advance_amount)).filter(
        Advance.entry_type == DEPOSIT,
        Advance.start_date.between(first, last),
        Advance.received_by.isnot(None)
    ).group_by(Advance.received_by).all()
    for name, total in advance_rows:
        collections.setdefault(name, {'revenue': 0.0, 'advance': 0.0})['advance'] = total or 0.0

    return collections


def premium_customers(month, year):
    """Vehicle numbers that paid at least PREMIUM_MULTIPLIER x the average this month."""
    paid = defaultdict(float)
    for entry in ledger.revenue_entries(month, year):
        paid[entry.vehicle_number] += entry.revenue_amount
    if not paid:
        return []
    average = sum(paid.values()) / len(paid)
    return sorted(number for number, total in paid.items()
                  if total >= PREMIUM_MULTIPLIER * average)


def dashboard_summary(month, year, today=None):
    today = today or datetime.date.today()
    month_window(month, year)

    vehicles = vehicle_counts()
    revenue = revenue_summary(month, year)
    paying = len({e.vehicle_number for e in ledger.revenue_entries(month, year)})

    return {
        'month': int(month),
        'year': int(year),
        'vehicles': vehicles,
        'revenue': revenue,
        'outstanding': outstanding_summary(today),
        'advances': ledger.compute_advance_totals(month, year),
        'collections': staff_collections(month, year),
        'ratios': {
            'active_ratio': _ratio(vehicles[ACTIVE], vehicles['total']),
            'average_revenue_per_vehicle': round(_ratio(revenue['total_revenue'], paying), 2)
        },
        'premium_customers': premium_customers(month, year)
    }
