import datetime
from unittest import mock

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from database import db
from errors import ConflictError, NotFoundError, ValidationError
from models import Vehicle, Revenue, Advance
import rentals
from support import AppTestCase, at


def eod(year, month, day):
    return datetime.datetime(year, month, day, 23, 59, 59, 999000)


class TestIntake(AppTestCase):
    def test_monthly_intake_records_default_advance(self):
        vehicle = self.monthly(at(2025, 1, 5))

        self.assertEqual(vehicle.status, 'active')
        self.assertEqual(vehicle.start_date, at(2025, 1, 5))
        self.assertEqual(vehicle.end_date, eod(2025, 1, 31))
        self.assertEqual(vehicle.vehicle_number, 'TN09AB1234')
        self.assertEqual(vehicle.advance_amount, 5000)

        deposits = Advance.query.all()
        self.assertEqual(len(deposits), 1)
        self.assertEqual(deposits[0].advance_amount, 5000)
        self.assertEqual(deposits[0].received_by, 'Balu')
        self.assertEqual(Revenue.query.count(), 0)

    def test_monthly_intake_with_deferred_advance(self):
        vehicle = self.monthly(at(2025, 1, 5), advance_amount=0)
        self.assertEqual(vehicle.advance_amount, 0)
        self.assertEqual(Advance.query.one().advance_amount, 0)

    def test_daily_intake_logs_revenue(self):
        vehicle = self.daily(at(2025, 1, 1), days=10)

        self.assertEqual(vehicle.end_date, eod(2025, 1, 10))
        self.assertEqual(vehicle.number_of_days, 10)
        revenue = Revenue.query.one()
        self.assertEqual(revenue.transaction_type, 'New')
        self.assertEqual(revenue.revenue_amount, 1500)
        self.assertEqual((revenue.month, revenue.year), (1, 2025))
        self.assertEqual(Advance.query.count(), 0)

    def test_zero_day_daily_starts_lapsed(self):
        vehicle = self.daily(at(2025, 1, 8), days=0)

        self.assertEqual(vehicle.status, 'inactive')
        self.assertEqual(vehicle.end_date, eod(2025, 1, 7))
        self.assertEqual(Revenue.query.count(), 0)

    def test_open_lot_is_stored_as_none(self):
        vehicle = self.monthly(at(2025, 1, 5), lot_number='Open', parking_type='open')
        self.assertIsNone(vehicle.lot_number)

    def test_missing_fields_rejected_without_writing(self):
        with self.assertRaises(ValidationError):
            self.monthly(at(2025, 1, 5), owner_name='')
        self.assertEqual(Vehicle.query.count(), 0)
        self.assertEqual(Advance.query.count(), 0)

    def test_blank_owner_or_contact_rejected(self):
        with self.assertRaises(ValidationError):
            self.monthly(at(2025, 1, 5), owner_name='   ')
        with self.assertRaises(ValidationError):
            self.daily(at(2025, 1, 5), contact_number='\t')
        self.assertEqual(Vehicle.query.count(), 0)

    def test_non_finite_rent_rejected(self):
        for rent in ('NaN', 'Infinity', float('inf'), float('-inf')):
            with self.assertRaises(ValidationError):
                self.daily(at(2025, 1, 5), rent_price=rent)
        with self.assertRaises(ValidationError):
            self.monthly(at(2025, 1, 5), advance_amount=float('nan'))
        self.assertEqual(Vehicle.query.count(), 0)
        self.assertEqual(Revenue.query.count(), 0)

    def test_out_of_range_day_count_rejected(self):
        for days in (10 ** 8, float('inf')):
            with self.assertRaises(ValidationError):
                self.daily(at(2025, 1, 5), days=days)
        self.assertEqual(Vehicle.query.count(), 0)

    def test_unknown_types_rejected(self):
        with self.assertRaises(ValidationError):
            self.monthly(at(2025, 1, 5), rental_type='yearly')
        with self.assertRaises(ValidationError):
            self.monthly(at(2025, 1, 5), parking_type='covered')

    def test_daily_needs_number_of_days(self):
        with self.assertRaises(ValidationError):
            self.daily(at(2025, 1, 5), days=None)

    def test_unknown_staff_rejected(self):
        with self.assertRaises(ValidationError):
            self.monthly(at(2025, 1, 5), received_by='Stranger')


class TestReactivation(AppTestCase):
    def test_reactivation_skips_to_end_of_next_month(self):
        vehicle = self.monthly(at(2025, 1, 5))
        rentals.sweep_expire_statuses(at(2025, 2, 10))
        self.assertEqual(rentals.get_vehicle(vehicle.id).status, 'inactive')

        vehicle = rentals.reactivate_vehicle(vehicle.id, 'UPI', 'Mani', now=at(2025, 2, 15, 12))

        self.assertEqual(vehicle.status, 'active')
        self.assertEqual(vehicle.end_date, eod(2025, 3, 31))
        self.assertEqual(vehicle.additional_days, 45)
        revenue = Revenue.query.one()
        self.assertEqual(revenue.transaction_type, 'Extension')
        self.assertEqual(revenue.revenue_amount, 3000)
        self.assertEqual(revenue.received_by, 'Mani')

    def test_override_rent_applies_to_this_payment_only(self):
        vehicle = self.monthly(at(2025, 1, 5))
        vehicle = rentals.reactivate_vehicle(vehicle.id, 'Cash', 'Balu', rent_price=3500,
                                             now=at(2025, 2, 3))
        self.assertEqual(Revenue.query.one().revenue_amount, 3500)
        self.assertEqual(vehicle.rent_price, 3000)

    def test_replayed_reactivation_does_not_advance_twice(self):
        vehicle = self.monthly(at(2025, 1, 5))
        rentals.reactivate_vehicle(vehicle.id, 'Cash', 'Balu', now=at(2025, 2, 15))
        vehicle = rentals.reactivate_vehicle(vehicle.id, 'Cash', 'Balu', now=at(2025, 2, 15, 11))

        self.assertEqual(vehicle.end_date, eod(2025, 3, 31))
        self.assertEqual(Revenue.query.count(), 1)

    def test_daily_rentals_cannot_be_reactivated(self):
        vehicle = self.daily(at(2025, 1, 1))
        with self.assertRaises(ValidationError):
            rentals.reactivate_vehicle(vehicle.id, 'Cash', 'Balu', now=at(2025, 1, 20))

    def test_missing_vehicle(self):
        with self.assertRaises(NotFoundError):
            rentals.reactivate_vehicle(999, 'Cash', 'Balu')


class TestExtension(AppTestCase):
    def test_daily_extension_while_expired(self):
        vehicle = self.daily(at(2025, 1, 1), days=10)
        rentals.sweep_expire_statuses(at(2025, 1, 12))

        vehicle = rentals.extend_rental(vehicle.id, 5, 'Cash', 'Balu', now=at(2025, 1, 12))

        self.assertEqual(vehicle.end_date, eod(2025, 1, 15))
        self.assertEqual(vehicle.number_of_days, 15)
        self.assertEqual(vehicle.status, 'active')
        extension = Revenue.query.filter_by(transaction_type='Extension').one()
        self.assertEqual(extension.revenue_amount, 750)
        self.assertEqual(extension.number_of_days, 5)

    def test_non_positive_days_rejected(self):
        vehicle = self.daily(at(2025, 1, 1))
        for days in (0, -3, 'two', None):
            with self.assertRaises(ValidationError):
                rentals.extend_rental(vehicle.id, days, 'Cash', 'Balu', now=at(2025, 1, 5))
        self.assertEqual(rentals.get_vehicle(vehicle.id).end_date, eod(2025, 1, 10))

    def test_out_of_range_days_rejected(self):
        vehicle = self.daily(at(2025, 1, 1))
        for days in (10 ** 8, float('inf'), 10 ** 400):
            with self.assertRaises(ValidationError):
                rentals.extend_rental(vehicle.id, days, 'Cash', 'Balu', now=at(2025, 1, 5))
        self.assertEqual(rentals.get_vehicle(vehicle.id).end_date, eod(2025, 1, 10))
        self.assertEqual(Revenue.query.count(), 1)

    def test_monthly_extension_matches_reactivation(self):
        vehicle = self.monthly(at(2025, 1, 5))
        vehicle = rentals.extend_rental(vehicle.id, None, 'Cash', 'Balu', now=at(2025, 1, 28))
        self.assertEqual(vehicle.end_date, eod(2025, 2, 28))

    def test_missing_end_date_fails_loudly(self):
        vehicle = self.daily(at(2025, 1, 1))
        vehicle.end_date = None
        db.session.commit()
        with self.assertRaises(ValidationError):
            rentals.extend_rental(vehicle.id, 2, 'Cash', 'Balu', now=at(2025, 1, 5))

    def test_stale_version_is_rejected(self):
        vehicle = self.daily(at(2025, 1, 1))
        read_version = vehicle.version
        rentals.extend_rental(vehicle.id, 2, 'Cash', 'Balu', expected_version=read_version,
                              now=at(2025, 1, 5))

        # A retry with the version first read must not extend again
        with self.assertRaises(ConflictError):
            rentals.extend_rental(vehicle.id, 2, 'Cash', 'Balu', expected_version=read_version,
                                  now=at(2025, 1, 5))
        vehicle = rentals.get_vehicle(vehicle.id)
        self.assertEqual(vehicle.end_date, eod(2025, 1, 12))
        self.assertEqual(vehicle.version, read_version + 1)

    def test_concurrent_write_surfaces_as_conflict(self):
        vehicle = self.daily(at(2025, 1, 1))
        with mock.patch.object(Session, 'commit', side_effect=StaleDataError("row changed")):
            with self.assertRaises(ConflictError):
                rentals.extend_rental(vehicle.id, 2, 'Cash', 'Balu', now=at(2025, 1, 5))


class TestEditAndRemove(AppTestCase):
    def test_edit_never_touches_period(self):
        vehicle = self.monthly(at(2025, 1, 5))
        vehicle = rentals.edit_vehicle(vehicle.id, {
            'owner_name': 'Ravi K',
            'rent_price': 3200,
            'start_date': '2024-01-01T00:00:00',
            'end_date': '2030-12-31T00:00:00',
            'endDate': '2030-12-31T00:00:00',
        })

        self.assertEqual(vehicle.owner_name, 'Ravi K')
        self.assertEqual(vehicle.rent_price, 3200)
        self.assertEqual(vehicle.start_date, at(2025, 1, 5))
        self.assertEqual(vehicle.end_date, eod(2025, 1, 31))

    def test_edit_ignores_lifecycle_fields(self):
        vehicle = self.daily(at(2025, 1, 8), days=0)
        vehicle = rentals.edit_vehicle(vehicle.id, {'status': 'active', 'number_of_days': 30})
        self.assertEqual(vehicle.status, 'inactive')
        self.assertEqual(vehicle.number_of_days, 0)

    def test_invalid_edit_changes_nothing(self):
        vehicle = self.monthly(at(2025, 1, 5))
        with self.assertRaises(ValidationError):
            rentals.edit_vehicle(vehicle.id, {'owner_name': 'New Owner', 'parking_type': 'roof'})
        self.assertEqual(rentals.get_vehicle(vehicle.id).owner_name, 'Ravi Kumar')

    def test_edit_with_stale_version(self):
        vehicle = self.monthly(at(2025, 1, 5))
        with self.assertRaises(ConflictError):
            rentals.edit_vehicle(vehicle.id, {'owner_name': 'X'}, expected_version=vehicle.version + 5)

    def test_edit_missing_vehicle(self):
        with self.assertRaises(NotFoundError):
            rentals.edit_vehicle(42, {'owner_name': 'X'})

    def test_remove_keeps_ledger(self):
        vehicle = self.monthly(at(2025, 1, 5))
        rentals.remove_vehicle(vehicle.id)

        self.assertEqual(Vehicle.query.count(), 0)
        self.assertEqual(Advance.query.count(), 1)
        with self.assertRaises(NotFoundError):
            rentals.remove_vehicle(vehicle.id)


class TestQueries(AppTestCase):
    def test_list_filters(self):
        self.monthly(at(2025, 1, 5))
        self.daily(at(2025, 1, 5), days=0)

        self.assertEqual(len(rentals.list_vehicles()), 2)
        self.assertEqual([v.rental_type for v in rentals.list_vehicles(status='inactive')], ['daily'])
        self.assertEqual([v.parking_type for v in rentals.list_vehicles(rental_type='monthly')], ['private'])
        with self.assertRaises(ValidationError):
            rentals.list_vehicles(status='expired')

    def test_search_is_case_insensitive(self):
        self.monthly(at(2025, 1, 5))
        self.monthly(at(2025, 1, 5), vehicle_number='AP10XY0001', owner_name='Lakshmi')

        self.assertEqual([v.owner_name for v in rentals.search_vehicles('ravi')], ['Ravi Kumar'])
        self.assertEqual(len(rentals.search_vehicles('swift')), 2)

    def test_empty_search_lists_vehicles_without_deposit(self):
        self.monthly(at(2025, 1, 5))
        self.monthly(at(2025, 1, 5), vehicle_number='AP10XY0001', advance_amount=0)

        self.assertEqual([v.vehicle_number for v in rentals.search_vehicles('')], ['AP10XY0001'])

    def test_available_lots(self):
        self.monthly(at(2025, 1, 5), lot_number='3a')
        self.daily(at(2025, 1, 5), days=0, lot_number='4A')

        free = rentals.available_lots()
        self.assertEqual(len(free), len(rentals.ALL_LOTS) - 1)
        self.assertNotIn('3A', free)
        self.assertIn('4A', free)
        self.assertEqual(rentals.available_lots('b'), [f"{n}B" for n in range(1, 21)])
        with self.assertRaises(ValidationError):
            rentals.available_lots('Z')


class TestStatusSweep(AppTestCase):
    def test_only_lapsed_active_vehicles_flip(self):
        lapsed = self.daily(at(2025, 1, 1), days=3)
        current = self.monthly(at(2025, 1, 5))

        count = rentals.sweep_expire_statuses(at(2025, 1, 4))

        self.assertEqual(count, 1)
        self.assertEqual(rentals.get_vehicle(lapsed.id).status, 'inactive')
        self.assertEqual(rentals.get_vehicle(current.id).status, 'active')

    def test_end_of_last_day_is_still_active(self):
        vehicle = self.daily(at(2025, 1, 1), days=3)
        self.assertEqual(rentals.sweep_expire_statuses(eod(2025, 1, 3)), 0)
        self.assertEqual(rentals.get_vehicle(vehicle.id).status, 'active')

    def test_never_reactivates(self):
        vehicle = self.daily(at(2025, 1, 8), days=0)
        vehicle.end_date = eod(2025, 12, 31)
        db.session.commit()

        self.assertEqual(rentals.sweep_expire_statuses(at(2025, 1, 9)), 0)
        self.assertEqual(rentals.get_vehicle(vehicle.id).status, 'inactive')

    def test_reactivation_after_sweep_wins(self):
        vehicle = self.monthly(at(2025, 1, 5))
        rentals.sweep_expire_statuses(at(2025, 2, 1))
        vehicle = rentals.reactivate_vehicle(vehicle.id, 'Cash', 'Balu', now=at(2025, 2, 1, 9))
        rentals.sweep_expire_statuses(at(2025, 2, 1, 10))
        self.assertEqual(rentals.get_vehicle(vehicle.id).status, 'active')

    def test_failed_sweep_is_contained(self):
        failure = OperationalError("UPDATE vehicle", {}, Exception("database is locked"))
        with mock.patch.object(rentals, 'sweep_expire_statuses', side_effect=failure):
            self.assertIsNone(rentals.run_status_sweep(at(2025, 1, 1)))

    def test_run_status_sweep_returns_count(self):
        self.daily(at(2025, 1, 1), days=1)
        self.assertEqual(rentals.run_status_sweep(at(2025, 1, 3)), 1)
