"""
Money logs: rent received (Revenue) and security deposits (Advance).

Both logs are append-only. Balances and monthly figures are always summed
from the rows, so any past month can be reported again exactly.
"""
import datetime
import logging

from database import db
from errors import NotFoundError, ValidationError
from models import Vehicle, Revenue, Advance, ACTIVE, DEPOSIT, REFUND
from periods import MONTHLY, DAILY, month_window
import validation

logger = logging.getLogger(__name__)


# ==========================================
# WRITERS
# ==========================================

def add_revenue(vehicle, transaction_type, revenue_amount, transaction_mode,
                received_by=None, number_of_days=None, rent_price=None, now=None):
    """Stage a revenue row for `vehicle`. The caller commits."""
    now = now or datetime.datetime.now()
    entry = Revenue(
        vehicle_number=vehicle.vehicle_number,
        vehicle_description=vehicle.vehicle_description,
        lot_number=vehicle.lot_number,
        rental_type=vehicle.rental_type,
        rent_price=rent_price if rent_price is not None else vehicle.rent_price,
        number_of_days=number_of_days,
        month=now.month,
        year=now.year,
        revenue_amount=revenue_amount,
        transaction_date=now,
        transaction_type=transaction_type,
        transaction_mode=transaction_mode,
        received_by=received_by
    )
    db.session.add(entry)
    return entry


def add_deposit(vehicle, advance_amount, transaction_mode, received_by=None, now=None):
    """Stage a deposit row for `vehicle`. The caller commits."""
    now = now or datetime.datetime.now()
    entry = Advance(
        entry_type=DEPOSIT,
        vehicle_number=vehicle.vehicle_number,
        vehicle_description=vehicle.vehicle_description,
        lot_number=vehicle.lot_number,
        parking_type=vehicle.parking_type,
        transaction_mode=transaction_mode,
        received_by=received_by,
        start_date=now,
        advance_amount=advance_amount,
        month=now.month,
        year=now.year
    )
    db.session.add(entry)
    return entry


def record_advance(vehicle_number, amount, transaction_mode, received_by, now=None):
    """
    Take a further deposit for a live vehicle (typically one that joined with
    no advance). Appends to the ledger; the vehicle row is left alone.
    """
    number = validation.vehicle_number(vehicle_number)
    amount = validation.amount(amount, "Advance amount")
    transaction_mode, received_by = validation.payment(transaction_mode, received_by)

    vehicle = Vehicle.query.filter_by(vehicle_number=number).order_by(Vehicle.id.desc()).first()
    if not vehicle:
        raise NotFoundError(f"No vehicle found with number {number}")

    entry = add_deposit(vehicle, amount, transaction_mode, received_by, now=now)
    db.session.commit()
    logger.info("Advance of %.2f recorded for %s by %s", amount, number, received_by)
    return entry


def record_refund(vehicle_number, amount, refund_date=None, transaction_mode='UPI', received_by=None):
    """
    Return part or all of a vehicle's deposit. The refund cannot exceed the
    net advance held for that vehicle number on the refund date.
    """
    number = validation.vehicle_number(vehicle_number)
    amount = validation.amount(amount, "Refund amount")
    transaction_mode, received_by = validation.payment(
        transaction_mode, received_by, required_staff=False)
    refund_date = refund_date or datetime.datetime.now()

    deposit = Advance.query.filter_by(vehicle_number=number, entry_type=DEPOSIT) \
        .order_by(Advance.start_date.desc()).first()
    if not deposit:
        raise NotFoundError(f"No advance on record for {number}")

    held = advance_balance(number, at=refund_date)
    if amount > held:
        raise ValidationError(f"Refund of {amount:.2f} exceeds the {held:.2f} held for {number}")

    entry = Advance(
        entry_type=REFUND,
        vehicle_number=number,
        vehicle_description=deposit.vehicle_description,
        lot_number=deposit.lot_number,
        parking_type=deposit.parking_type,
        transaction_mode=transaction_mode,
        received_by=received_by,
        advance_amount=0,
        refund_date=refund_date,
        advance_refund=amount,
        month=refund_date.month,
        year=refund_date.year
    )
    db.session.add(entry)
    db.session.commit()
    logger.info("Refund of %.2f recorded for %s", amount, number)
    return entry


# ==========================================
# ADVANCE QUERIES
# ==========================================

def _deposit_sum(*criteria):
    return db.session.query(db.func.sum(Advance.advance_amount)).filter(
        Advance.entry_type == DEPOSIT, *criteria
    ).scalar() or 0.0


def _refund_sum(*criteria):
    return db.session.query(db.func.sum(Advance.advance_refund)).filter(
        Advance.entry_type == REFUND, *criteria
    ).scalar() or 0.0


def advance_balance(vehicle_number, at=None):
    """Deposits minus refunds for one vehicle number, as of `at` (default: all)."""
    number = validation.vehicle_number(vehicle_number)
    deposits = [Advance.vehicle_number == number]
    refunds = [Advance.vehicle_number == number]
    if at is not None:
        deposits.append(Advance.start_date <= at)
        refunds.append(Advance.refund_date <= at)
    return _deposit_sum(*deposits) - _refund_sum(*refunds)


def compute_advance_totals(month, year):
    """
    monthly_net only counts entries dated inside the month; total_to_date is
    the running net of everything up to the month's last instant.
    """
    first, last = month_window(month, year)

    month_deposits = _deposit_sum(Advance.start_date >= first, Advance.start_date <= last)
    month_refunds = _refund_sum(Advance.refund_date >= first, Advance.refund_date <= last)
    total_advance = _deposit_sum(Advance.start_date <= last)
    total_refund = _refund_sum(Advance.refund_date <= last)

    incoming = Advance.query.filter(
        Advance.entry_type == DEPOSIT,
        Advance.advance_amount > 0,
        Advance.start_date >= first,
        Advance.start_date <= last
    ).count()
    outgoing = Advance.query.filter(
        Advance.entry_type == REFUND,
        Advance.refund_date >= first,
        Advance.refund_date <= last
    ).count()

    return {
        'monthly_net': month_deposits - month_refunds,
        'monthly_advance': month_deposits,
        'monthly_refund': month_refunds,
        'total_to_date': total_advance - total_refund,
        'total_advance': total_advance,
        'total_refund': total_refund,
        'incoming_count': incoming,
        'outgoing_count': outgoing
    }


def advances_for_month(month, year):
    first, last = month_window(month, year)
    entries = Advance.query.filter(db.or_(
        db.and_(Advance.entry_type == DEPOSIT, Advance.start_date.between(first, last)),
        db.and_(Advance.entry_type == REFUND, Advance.refund_date.between(first, last))
    )).order_by(Advance.id).all()
    return entries


def net_advance_by_vehicle():
    """Net deposit held per vehicle number across the whole ledger."""
    net = {}
    rows = db.session.query(
        Advance.vehicle_number,
        db.func.sum(Advance.advance_amount),
        db.func.sum(db.func.coalesce(Advance.advance_refund, 0))
    ).group_by(Advance.vehicle_number).all()
    for number, deposited, refunded in rows:
        net[number] = (deposited or 0.0) - (refunded or 0.0)
    return net


def zero_advance_vehicles():
    """Active monthly renters holding no deposit at all."""
    net = net_advance_by_vehicle()
    vehicles = Vehicle.query.filter_by(status=ACTIVE, rental_type=MONTHLY).order_by(Vehicle.id).all()
    return [v for v in vehicles if net.get(v.vehicle_number, 0.0) <= 0]


# ==========================================
# REVENUE QUERIES
# ==========================================

def revenue_entries(month=None, year=None):
    query = Revenue.query
    if month is not None:
        query = query.filter(Revenue.month == validation.whole_number(month, "Month", minimum=1))
    if year is not None:
        query = query.filter(Revenue.year == validation.whole_number(year, "Year", minimum=1))
    return query.order_by(Revenue.transaction_date.desc()).all()


def revenue_stats(month, year):
    """Revenue total and entry count per rental type for one month."""
    month_window(month, year)
    stats = {rental_type: {'total_revenue': 0.0, 'count': 0} for rental_type in (MONTHLY, DAILY)}

    rows = db.session.query(
        Revenue.rental_type,
        db.func.sum(Revenue.revenue_amount),
        db.func.count(Revenue.id)
    ).filter(
        Revenue.month == int(month), Revenue.year == int(year)
    ).group_by(Revenue.rental_type).all()

    for rental_type, total, count in rows:
        stats[rental_type] = {'total_revenue': total or 0.0, 'count': count}
    return stats


# ==========================================
# HISTORY
# ==========================================

def reconstruct_archived_view(vehicle_number, revenue, advances):
    """
    Rebuild what we know about a vehicle that no longer has a live record,
    using only its log rows. Nothing here is stored.
    """
    revenue = sorted(revenue, key=lambda r: r.transaction_date)
    advances = sorted(advances, key=lambda a: a.entry_date)

    dated = [(r.transaction_date, r) for r in revenue] + [(a.entry_date, a) for a in advances]
    dates = [when for when, _ in dated]
    latest = max(dated, key=lambda pair: pair[0])[1] if dated else None

    total_advance = sum(a.advance_amount or 0.0 for a in advances if a.entry_type == DEPOSIT)
    total_refund = sum(a.advance_refund or 0.0 for a in advances if a.entry_type == REFUND)

    return {
        'vehicle_number': vehicle_number,
        'vehicle_description': latest.vehicle_description if latest else None,
        'lot_number': latest.lot_number if latest else None,
        'rental_type': revenue[-1].rental_type if revenue else (MONTHLY if advances else None),
        'parking_type': advances[-1].parking_type if advances else None,
        'first_seen': min(dates).isoformat() if dates else None,
        'last_seen': max(dates).isoformat() if dates else None,
        'total_revenue': sum(r.revenue_amount for r in revenue),
        'transaction_count': len(revenue),
        'total_advance': total_advance,
        'total_refund': total_refund,
        'net_advance': total_advance - total_refund
    }


def vehicle_history(vehicle_number):
    number = validation.vehicle_number(vehicle_number)
    live = Vehicle.query.filter_by(vehicle_number=number).order_by(Vehicle.id).all()
    revenue = Revenue.query.filter_by(vehicle_number=number).all()
    advances = Advance.query.filter_by(vehicle_number=number).all()

    if not live and not revenue and not advances:
        raise NotFoundError(f"No records found for {number}")

    return {
        'vehicle_number': number,
        'vehicles': [v.to_dict() for v in live],
        'archived': None if live else reconstruct_archived_view(number, revenue, advances),
        'transactions': [r.to_dict() for r in sorted(revenue, key=lambda r: r.transaction_date)],
        'advances': [a.to_dict() for a in sorted(advances, key=lambda a: a.entry_date)]
    }
