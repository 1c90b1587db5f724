import datetime
import logging

import click
from flask import Blueprint, Flask, current_app, request, jsonify
from flask_cors import CORS

# Custom imports for database, models and the rental engine
from database import db
from config import Config
from errors import ValidationError, register_error_handlers
import billing
import cache
import ledger
import rentals
import reports
import validation

logger = logging.getLogger(__name__)

api = Blueprint('api', __name__, url_prefix='/api')


# --- Helper Functions ---

def _payload():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _month_year():
    """month (1-12) and year from the query string, defaulting to this month."""
    today = datetime.date.today()
    try:
        month = int(request.args.get('month', today.month))
        year = int(request.args.get('year', today.year))
    except ValueError:
        raise ValidationError("month and year must be numbers")
    return month, year


def _parse_datetime(value):
    if value in (None, ''):
        return None
    try:
        parsed = datetime.datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError:
        raise ValidationError("Invalid date format")
    if parsed.tzinfo is not None:
        # Stored dates are naive local time
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def _invalidate_dashboards():
    cache.clear_cache([cache.DASHBOARD_KEYS])


# ==========================================
# VEHICLE ROUTES
# ==========================================

@api.route('/vehicles', methods=['POST'])
def add_vehicle():
    vehicle = rentals.create_vehicle(_payload())
    _invalidate_dashboards()
    return jsonify({"message": "Vehicle registered", "vehicle": vehicle.to_dict()}), 201


@api.route('/vehicles', methods=['GET'])
def fetch_vehicles():
    vehicles = rentals.list_vehicles(
        status=request.args.get('status'),
        rental_type=request.args.get('rental_type'),
        parking_type=request.args.get('parking_type')
    )
    return jsonify([v.to_dict() for v in vehicles]), 200


@api.route('/vehicles/search', methods=['GET'])
def search_vehicles():
    vehicles = rentals.search_vehicles(request.args.get('query'))
    return jsonify([v.to_dict() for v in vehicles]), 200


@api.route('/vehicles/zero-advance', methods=['GET'])
def zero_advance_vehicles():
    return jsonify([v.to_dict() for v in ledger.zero_advance_vehicles()]), 200


@api.route('/vehicles/<int:vehicle_id>', methods=['GET'])
def vehicle_details(vehicle_id):
    vehicle = rentals.get_vehicle(vehicle_id)
    result = vehicle.to_dict()
    result['outstanding'] = billing.compute_outstanding(vehicle)
    result['advance_balance'] = ledger.advance_balance(vehicle.vehicle_number)
    return jsonify(result), 200


@api.route('/vehicles/<int:vehicle_id>', methods=['PUT'])
def modify_vehicle(vehicle_id):
    data = _payload()
    expected_version = data.pop('version', None)
    vehicle = rentals.edit_vehicle(vehicle_id, data, expected_version=expected_version)
    _invalidate_dashboards()
    return jsonify({"message": "Vehicle updated", "vehicle": vehicle.to_dict()}), 200


@api.route('/vehicles/<int:vehicle_id>', methods=['DELETE'])
def delete_vehicle(vehicle_id):
    rentals.remove_vehicle(vehicle_id)
    _invalidate_dashboards()
    return jsonify({"message": "Vehicle deleted"}), 200


@api.route('/vehicles/<int:vehicle_id>/reactivate', methods=['PUT'])
def reactivate_vehicle(vehicle_id):
    data = _payload()
    validation.require(data, 'version')
    vehicle = rentals.reactivate_vehicle(
        vehicle_id,
        transaction_mode=data.get('transaction_mode'),
        received_by=data.get('received_by'),
        rent_price=data.get('rent_price'),
        expected_version=data.get('version')
    )
    _invalidate_dashboards()
    return jsonify({"message": "Rental reactivated", "vehicle": vehicle.to_dict()}), 200


@api.route('/vehicles/<int:vehicle_id>/extend', methods=['PUT'])
def extend_vehicle_rental(vehicle_id):
    data = _payload()
    validation.require(data, 'version')
    vehicle = rentals.extend_rental(
        vehicle_id,
        additional_days=data.get('additional_days'),
        transaction_mode=data.get('transaction_mode'),
        received_by=data.get('received_by'),
        rent_price=data.get('rent_price'),
        expected_version=data.get('version')
    )
    _invalidate_dashboards()
    return jsonify({"message": "Rental extended", "vehicle": vehicle.to_dict()}), 200


@api.route('/vehicles/<int:vehicle_id>/outstanding', methods=['GET'])
def vehicle_outstanding(vehicle_id):
    vehicle = rentals.get_vehicle(vehicle_id)
    return jsonify(billing.compute_outstanding(vehicle)), 200


@api.route('/vehicles/history/<vehicle_number>', methods=['GET'])
def vehicle_history(vehicle_number):
    return jsonify(ledger.vehicle_history(vehicle_number)), 200


@api.route('/outstanding', methods=['GET'])
def outstanding_list():
    return jsonify(billing.outstanding_vehicles()), 200


@api.route('/lots/available', methods=['GET'])
def free_lots():
    return jsonify(rentals.available_lots(request.args.get('section'))), 200


# ==========================================
# ADVANCE & REVENUE ROUTES
# ==========================================

@api.route('/advances', methods=['POST'])
def add_advance():
    data = _payload()
    entry = ledger.record_advance(
        data.get('vehicle_number'),
        data.get('amount'),
        transaction_mode=data.get('transaction_mode'),
        received_by=data.get('received_by')
    )
    _invalidate_dashboards()
    return jsonify({"message": "Advance recorded", "advance": entry.to_dict()}), 201


@api.route('/advances/refund', methods=['POST'])
def refund_advance():
    data = _payload()
    entry = ledger.record_refund(
        data.get('vehicle_number'),
        data.get('amount'),
        refund_date=_parse_datetime(data.get('refund_date')),
        transaction_mode=data.get('transaction_mode') or 'UPI',
        received_by=data.get('received_by')
    )
    _invalidate_dashboards()
    return jsonify({"message": "Refund recorded", "advance": entry.to_dict()}), 201


@api.route('/advances', methods=['GET'])
def month_advances():
    month, year = _month_year()
    return jsonify([a.to_dict() for a in ledger.advances_for_month(month, year)]), 200


@api.route('/advances/total', methods=['GET'])
def advance_totals():
    month, year = _month_year()
    return jsonify(ledger.compute_advance_totals(month, year)), 200


@api.route('/revenue', methods=['GET'])
def revenue_list():
    entries = ledger.revenue_entries(request.args.get('month'), request.args.get('year'))
    return jsonify([r.to_dict() for r in entries]), 200


@api.route('/revenue/stats', methods=['GET'])
def revenue_stats():
    month, year = _month_year()
    return jsonify(ledger.revenue_stats(month, year)), 200


# ==========================================
# DASHBOARD & MAINTENANCE
# ==========================================

@api.route('/dashboard', methods=['GET'])
def dashboard():
    """Aggregated figures for one month. Cached briefly in Redis."""
    month, year = _month_year()
    cache_key = f"dashboard_{year}_{month}"
    cached = cache.get_json(cache_key)
    if cached:
        return jsonify(cached), 200

    result = reports.dashboard_summary(month, year)
    cache.set_json(cache_key, result, current_app.config['DASHBOARD_CACHE_SECONDS'])
    return jsonify(result), 200


@api.route('/admin/sweep', methods=['POST'])
def sweep_now():
    count = rentals.sweep_expire_statuses()
    if count:
        _invalidate_dashboards()
    return jsonify({"transitioned": count}), 200


# ==========================================
# APPLICATION FACTORY
# ==========================================

def _configure_logging(app):
    level = app.config['LOG_LEVEL']
    root = logging.getLogger()
    root.setLevel(level)
    app.logger.setLevel(level)

    # avoid duplicate handlers in reloaders
    if not any(isinstance(h, logging.StreamHandler) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s [%(name)s] %(message)s"
        ))
        root.addHandler(handler)


def create_app(overrides=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    _configure_logging(app)

    # Initialize plugins
    db.init_app(app)
    cache.init_cache(app)
    CORS(app, resources={r"/api/*": {"origins": app.config['CORS_ORIGINS']}})

    register_error_handlers(app)
    app.register_blueprint(api)

    # Health Check Route
    @app.route('/')
    def health_check():
        return "SP Parking rentals API is running."

    @app.cli.command('init-db')
    def init_db():
        """Create the database tables."""
        db.create_all()
        click.echo("Database tables created.")

    @app.cli.command('sweep')
    def sweep():
        """Mark lapsed rentals inactive now."""
        click.echo(f"{rentals.sweep_expire_statuses()} vehicle(s) marked inactive.")

    return app


if __name__ == '__main__':
    app = create_app()
    with app.app_context():
        db.create_all()
    app.run(debug=True)
