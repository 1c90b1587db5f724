"""
Rental lifecycle: intake, reactivation, extension, edit, removal, and the
periodic sweep that marks lapsed rentals inactive.

Every write goes through the vehicle's version column, so two requests
racing on the same vehicle cannot both win; the loser gets ConflictError.
"""
import datetime
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy.orm.exc import StaleDataError
from flask import current_app

from database import db
from errors import ConflictError, NotFoundError, ValidationError
from models import (Vehicle, ACTIVE, INACTIVE, STATUSES, PARKING_TYPES, VEHICLE_TYPES,
                    TRANSACTION_MODES, NEW, EXTENSION)
from periods import (MONTHLY, DAILY, RENTAL_TYPES, compute_period_end, end_of_day,
                     next_month_end, shift_period_end, days_until)
import ledger
import validation

logger = logging.getLogger(__name__)

# Lot layout of the facility: 1A-11A, 1B-20B, 1C-21C
LOT_SECTIONS = {'A': 11, 'B': 20, 'C': 21}
ALL_LOTS = [f"{n}{section}" for section, size in LOT_SECTIONS.items() for n in range(1, size + 1)]

# Fields an edit may touch. Period fields are never in here.
EDITABLE_FIELDS = (
    'vehicle_number', 'vehicle_description', 'vehicle_type', 'lot_number',
    'owner_name', 'contact_number', 'parking_type', 'rent_price', 'transaction_mode'
)
PERIOD_FIELDS = ('start_date', 'end_date', 'startDate', 'endDate')


# --- Helpers ---

def _commit():
    try:
        db.session.commit()
    except StaleDataError:
        db.session.rollback()
        raise ConflictError("Vehicle was changed by another request. Reload it and try again.")


def get_vehicle(vehicle_id, for_update=False):
    """Fetch a vehicle fresh from the database or raise NotFoundError."""
    vehicle = db.session.get(Vehicle, vehicle_id, populate_existing=True,
                             with_for_update=for_update or None)
    if not vehicle:
        raise NotFoundError(f"Vehicle {vehicle_id} not found")
    return vehicle


def _check_version(vehicle, expected_version):
    if expected_version is None:
        return
    if validation.whole_number(expected_version, "Version", minimum=1) != vehicle.version:
        raise ConflictError(
            f"Vehicle {vehicle.id} is at version {vehicle.version}, not {expected_version}. "
            "Reload it and try again."
        )


def _mark_active(vehicle):
    # Always written, even if unchanged, so this write beats a concurrent sweep
    vehicle.status = ACTIVE
    flag_modified(vehicle, 'status')


# ==========================================
# INTAKE
# ==========================================

def create_vehicle(data, now=None):
    """
    Register a new rental starting now. Monthly intakes log their deposit;
    daily intakes log the days paid for. A daily intake for zero days is
    recorded as already lapsed so it shows up as owing from today.
    """
    now = now or datetime.datetime.now()
    validation.require(data, 'vehicle_number', 'owner_name', 'contact_number',
                       'parking_type', 'rental_type', 'rent_price')

    rental_type = validation.choice(data.get('rental_type'), RENTAL_TYPES, "rental type")
    parking_type = validation.choice(data.get('parking_type'), PARKING_TYPES, "parking type")
    vehicle_type = validation.choice(data.get('vehicle_type') or 'own', VEHICLE_TYPES, "vehicle type")
    transaction_mode, received_by = validation.payment(
        data.get('transaction_mode') or 'Cash', data.get('received_by'), required_staff=False)
    rent_price = validation.amount(data.get('rent_price'), "Rent price")

    number_of_days = None
    advance_amount = 0.0
    if rental_type == DAILY:
        if data.get('number_of_days') in (None, ''):
            raise ValidationError("Validation Error: Daily rentals need number_of_days")
        number_of_days = validation.whole_number(data['number_of_days'], "Number of days")
    else:
        advance = data.get('advance_amount')
        if advance in (None, ''):
            advance = current_app.config['DEFAULT_ADVANCE_AMOUNT']
        advance_amount = validation.amount(advance, "Advance amount", allow_zero=True)

    vehicle = Vehicle(
        vehicle_number=validation.vehicle_number(data['vehicle_number']),
        vehicle_description=data.get('vehicle_description'),
        vehicle_type=vehicle_type,
        lot_number=validation.lot_number(data.get('lot_number')),
        owner_name=str(data['owner_name']).strip(),
        contact_number=str(data['contact_number']).strip(),
        parking_type=parking_type,
        rental_type=rental_type,
        rent_price=rent_price,
        number_of_days=number_of_days,
        advance_amount=advance_amount,
        additional_days=0,
        start_date=now,
        transaction_mode=transaction_mode
    )

    if rental_type == DAILY and number_of_days == 0:
        vehicle.end_date = end_of_day(now - datetime.timedelta(days=1))
        vehicle.status = INACTIVE
    else:
        vehicle.end_date = compute_period_end(rental_type, now, number_of_days)
        vehicle.status = ACTIVE

    db.session.add(vehicle)

    if rental_type == MONTHLY:
        ledger.add_deposit(vehicle, advance_amount, transaction_mode, received_by, now=now)
    elif number_of_days > 0:
        ledger.add_revenue(vehicle, NEW, rent_price * number_of_days, transaction_mode,
                           received_by, number_of_days=number_of_days, now=now)

    db.session.commit()
    logger.info("Vehicle %s (#%s) registered: %s rental through %s",
                vehicle.vehicle_number, vehicle.id, rental_type, vehicle.end_date)
    return vehicle


# ==========================================
# RENEWALS
# ==========================================

def _renew_monthly(vehicle, transaction_mode, received_by, rent_price, now):
    """
    Paid rent on a monthly rental covers through the end of next month.
    Replaying the same payment does not move the period again.
    """
    new_end = next_month_end(now)
    if vehicle.end_date is not None and vehicle.end_date >= new_end:
        logger.info("Vehicle #%s already paid through %s; renewal ignored",
                    vehicle.id, vehicle.end_date)
        return vehicle

    vehicle.additional_days = (vehicle.additional_days or 0) + days_until(now, new_end)
    vehicle.end_date = new_end
    vehicle.transaction_mode = transaction_mode
    _mark_active(vehicle)

    amount = rent_price if rent_price is not None else vehicle.rent_price
    ledger.add_revenue(vehicle, EXTENSION, amount, transaction_mode, received_by,
                       rent_price=amount, now=now)
    _commit()
    logger.info("Vehicle #%s renewed through %s", vehicle.id, new_end)
    return vehicle


def reactivate_vehicle(vehicle_id, transaction_mode, received_by, rent_price=None,
                       expected_version=None, now=None):
    """Renew a lapsed monthly rental. Daily rentals are extended instead."""
    now = now or datetime.datetime.now()
    transaction_mode, received_by = validation.payment(transaction_mode, received_by)
    if rent_price is not None:
        rent_price = validation.amount(rent_price, "Rent price")

    vehicle = get_vehicle(vehicle_id, for_update=True)
    _check_version(vehicle, expected_version)
    if vehicle.rental_type != MONTHLY:
        raise ValidationError("Only monthly rentals can be reactivated; extend daily rentals instead")

    return _renew_monthly(vehicle, transaction_mode, received_by, rent_price, now)


def extend_rental(vehicle_id, additional_days, transaction_mode, received_by, rent_price=None,
                  expected_version=None, now=None):
    """
    Daily: push end_date out by `additional_days` and reactivate if lapsed.
    Monthly: same as reactivate_vehicle; additional_days is not used.
    """
    now = now or datetime.datetime.now()
    transaction_mode, received_by = validation.payment(transaction_mode, received_by)
    if rent_price is not None:
        rent_price = validation.amount(rent_price, "Rent price")

    vehicle = get_vehicle(vehicle_id, for_update=True)
    _check_version(vehicle, expected_version)

    if vehicle.rental_type == MONTHLY:
        return _renew_monthly(vehicle, transaction_mode, received_by, rent_price, now)

    days = validation.whole_number(additional_days, "Additional days", minimum=1)
    new_end = shift_period_end(vehicle.end_date, days)

    vehicle.end_date = new_end
    vehicle.number_of_days = (vehicle.number_of_days or 0) + days
    vehicle.transaction_mode = transaction_mode
    _mark_active(vehicle)

    ledger.add_revenue(vehicle, EXTENSION, vehicle.rent_price * days, transaction_mode,
                       received_by, number_of_days=days, now=now)
    _commit()
    logger.info("Vehicle #%s extended by %d days through %s", vehicle.id, days, new_end)
    return vehicle


# ==========================================
# EDIT / REMOVE / READ
# ==========================================

def edit_vehicle(vehicle_id, fields, expected_version=None):
    """
    Update descriptive and billing fields. Period dates are dropped from the
    payload before anything is applied; edits never move a period.
    """
    vehicle = get_vehicle(vehicle_id, for_update=True)
    _check_version(vehicle, expected_version)

    stripped = [key for key in fields if key in PERIOD_FIELDS]
    if stripped:
        logger.debug("Ignoring period fields %s in edit of vehicle #%s", stripped, vehicle.id)
    ignored = [key for key in fields if key not in EDITABLE_FIELDS and key not in PERIOD_FIELDS]
    if ignored:
        logger.debug("Ignoring non-editable fields %s in edit of vehicle #%s", ignored, vehicle.id)

    updates = {key: value for key, value in fields.items() if key in EDITABLE_FIELDS}

    # Validate everything before touching the record
    if 'vehicle_number' in updates:
        updates['vehicle_number'] = validation.vehicle_number(updates['vehicle_number'])
    if 'lot_number' in updates:
        updates['lot_number'] = validation.lot_number(updates['lot_number'])
    if 'parking_type' in updates:
        validation.choice(updates['parking_type'], PARKING_TYPES, "parking type")
    if 'vehicle_type' in updates:
        validation.choice(updates['vehicle_type'], VEHICLE_TYPES, "vehicle type")
    if 'transaction_mode' in updates:
        validation.choice(updates['transaction_mode'], TRANSACTION_MODES, "transaction mode")
    if 'rent_price' in updates:
        updates['rent_price'] = validation.amount(updates['rent_price'], "Rent price")
    for key in ('owner_name', 'contact_number'):
        if key in updates:
            if not str(updates[key] or '').strip():
                raise ValidationError(f"Validation Error: {key} cannot be empty")
            updates[key] = str(updates[key]).strip()

    for key, value in updates.items():
        setattr(vehicle, key, value)

    _commit()
    logger.info("Vehicle #%s edited: %s", vehicle.id, ', '.join(sorted(updates)) or 'no changes')
    return vehicle


def remove_vehicle(vehicle_id):
    """Delete the live record. Its revenue and advance rows stay as history."""
    vehicle = get_vehicle(vehicle_id, for_update=True)
    number = vehicle.vehicle_number
    db.session.delete(vehicle)
    _commit()
    logger.info("Vehicle #%s (%s) removed", vehicle_id, number)


def list_vehicles(status=None, rental_type=None, parking_type=None):
    query = Vehicle.query
    if status:
        query = query.filter_by(status=validation.choice(status, STATUSES, "status"))
    if rental_type:
        query = query.filter_by(rental_type=validation.choice(rental_type, RENTAL_TYPES, "rental type"))
    if parking_type:
        query = query.filter_by(parking_type=validation.choice(parking_type, PARKING_TYPES, "parking type"))
    return query.order_by(Vehicle.id).all()


def search_vehicles(query=None):
    """
    Search active vehicles by number, description or owner. With no query,
    returns the active renters who still owe a deposit.
    """
    if not query or not query.strip():
        return ledger.zero_advance_vehicles()

    pattern = f"%{query.strip()}%"
    return Vehicle.query.filter(
        Vehicle.status == ACTIVE,
        db.or_(
            Vehicle.vehicle_number.ilike(pattern),
            Vehicle.vehicle_description.ilike(pattern),
            Vehicle.owner_name.ilike(pattern)
        )
    ).order_by(Vehicle.id).all()


def available_lots(section=None):
    """Lots not held by an active rental, optionally within one section."""
    lots = ALL_LOTS
    if section:
        section = validation.choice(str(section).upper(), tuple(LOT_SECTIONS), "lot section")
        lots = [lot for lot in lots if lot.endswith(section)]

    occupied = {
        lot for (lot,) in db.session.query(Vehicle.lot_number).filter(
            Vehicle.status == ACTIVE, Vehicle.lot_number.isnot(None)
        )
    }
    return [lot for lot in lots if lot not in occupied]


# ==========================================
# STATUS SWEEP
# ==========================================

def sweep_expire_statuses(now=None):
    """
    Mark every active vehicle whose period ended before `now` as inactive.
    Only ever moves active -> inactive. Returns how many rows changed.
    """
    now = now or datetime.datetime.now()
    count = Vehicle.query.filter(
        Vehicle.status == ACTIVE,
        Vehicle.end_date < now
    ).update({Vehicle.status: INACTIVE}, synchronize_session=False)
    db.session.commit()
    logger.info("Status sweep at %s: %d vehicle(s) lapsed", now.isoformat(), count)
    return count


def run_status_sweep(now=None):
    """
    Scheduler entry point. A failed run is logged and rolled back so the
    next interval can try again; it never propagates.
    """
    try:
        return sweep_expire_statuses(now)
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Status sweep failed; will retry next interval")
        return None
