"""
=============================================================================
PLUG&SAVE - MAIN FLASK APPLICATION
=============================================================================

Backend for the Plug&Save energy dashboard. The pages call this API to:
- Quote tiered electricity rates and costs
- List and control the signed-in account's devices
  (power toggle, cost limits, rename)
- Read a usage/cost report
- Start, stop and force the power consumption simulation

Storage:
- DynamoDB (USE_DYNAMODB=true): device records in the Devices table
- Otherwise: a local JSON file (LOCAL_DEVICES_FILE)

Notifications:
- SNS (USE_SNS=true): email when a cost limit switches a device off

How to run:
    python -m backend.app

Then visit: http://127.0.0.1:5000
=============================================================================
"""

# =============================================================================
# IMPORTS
# =============================================================================

import math
import os

from flask import Flask, request, jsonify

# dotenv - Load environment variables from .env file
from dotenv import load_dotenv

load_dotenv()

from backend.lib.local_store import LocalDeviceStore
from backend.lib.plugsave_core.classifier import default_classifier
from backend.lib.plugsave_core.controls import (
    load_owned_device,
    rename_device,
    reset_limits,
    set_cost_limit,
    toggle_power,
)
from backend.lib.plugsave_core.errors import (
    DeviceNotFound,
    InvalidLimit,
    InvalidName,
    PermissionDenied,
    PlugSaveError,
    StoreError,
)
from backend.lib.plugsave_core.models import Device
from backend.lib.plugsave_core.report import summarize_devices
from backend.lib.plugsave_core.session import ActiveSession
from backend.lib.plugsave_core.simulator import ConsumptionSimulator, SimulationSettings
from backend.lib.plugsave_core.tariff import TariffCalculator, round_money


def env_flag(name: str, default: str = 'false') -> bool:
    return os.getenv(name, default).lower() == 'true'


# =============================================================================
# SERVICE INITIALIZATION
# =============================================================================
# Each AWS service is switched on by an environment variable. If it fails
# to start we fall back (local file storage, no notifications).

# -----------------------------------------------------------------------------
# DEVICE STORE - DynamoDB or local JSON file
# -----------------------------------------------------------------------------
USE_DYNAMODB = env_flag('USE_DYNAMODB')
device_store = None

if USE_DYNAMODB:
    try:
        from backend.lib.dynamodb_service import DynamoDBService
        device_store = DynamoDBService()
        device_store.create_table_if_not_exists()
        print("DynamoDB storage enabled")
    except Exception as e:
        print(f"DynamoDB initialization failed: {e}. Using local storage.")
        USE_DYNAMODB = False
        device_store = None

if device_store is None:
    device_store = LocalDeviceStore()

# -----------------------------------------------------------------------------
# SNS SERVICE - shutoff alerts by email
# -----------------------------------------------------------------------------
USE_SNS = env_flag('USE_SNS')
sns_service = None

if USE_SNS:
    try:
        from backend.lib.sns_service import SNSService
        sns_service = SNSService()
        sns_service.create_topic_if_not_exists()
        print("SNS notifications enabled")
    except Exception as e:
        print(f"SNS initialization failed: {e}. Notifications disabled.")
        USE_SNS = False
        sns_service = None

# -----------------------------------------------------------------------------
# SESSION, TARIFF AND SIMULATOR
# -----------------------------------------------------------------------------
# The session holds the signed-in owner id (set through POST /session);
# SIMULATION_OWNER_ID pre-populates it for a single-account deployment.
session = ActiveSession(os.getenv('SIMULATION_OWNER_ID'))

calculator = TariffCalculator(currency=os.getenv('TARIFF_CURRENCY', 'SAR'))

simulator = ConsumptionSimulator(
    device_store,
    session,
    calculator=calculator,
    settings=SimulationSettings(interval_ms=int(os.getenv('SIMULATION_INTERVAL_MS', '2000'))),
)

if sns_service:
    simulator.add_shutoff_listener(sns_service.on_shutoff)

# =============================================================================
# FLASK APPLICATION
# =============================================================================

app = Flask(__name__)

# Domain errors -> HTTP status codes
ERROR_STATUS = {
    DeviceNotFound: 404,
    PermissionDenied: 403,
    InvalidLimit: 400,
    InvalidName: 400,
    StoreError: 502,
}


@app.errorhandler(PlugSaveError)
def handle_plugsave_error(e):
    status = next((code for cls, code in ERROR_STATUS.items() if isinstance(e, cls)), 400)
    return jsonify({"error": str(e)}), status


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def current_owner():
    """Owner id of the active session, or None."""
    return session()


def no_session():
    return jsonify({"error": "No active session"}), 400


def parse_usage(raw):
    """
    Parse the ?usage= query parameter.

    Returns (value, error). A missing parameter is passed through as None,
    which the tariff treats like zero usage.
    """
    if raw is None or raw == "":
        return None, None
    try:
        value = float(raw)
    except ValueError:
        return None, "usage must be a number"
    if not math.isfinite(value):
        return None, "usage must be a finite number"
    return value, None


def device_view(record: dict) -> dict:
    """A device record plus its class and current tiered costs."""
    view = dict(record)
    # tolerant of missing or malformed counters in stored rows
    device = Device.from_record(record)
    daily = device.daily_usage
    monthly = device.monthly_usage
    view["device_class"] = default_classifier.classify(device.name, device.device_type)
    view["daily_cost"] = round_money(calculator.cost_for_usage(daily))
    view["weekly_cost"] = round_money(calculator.cost_for_usage(daily * 7))
    view["monthly_cost"] = round_money(calculator.cost_for_usage(monthly))
    view["rate"] = calculator.rate_for_usage(monthly)
    return view


# =============================================================================
# API ROUTES - SESSION
# =============================================================================

@app.route("/session", methods=["GET"])
def get_session():
    return jsonify({"owner_id": current_owner()})


@app.route("/session", methods=["POST"])
def sign_in():
    """
    Set the signed-in account.

    Request Body (JSON):
        {"owner_id": "user-1"}
    """
    data = request.get_json(silent=True) or {}
    owner_id = data.get("owner_id")
    if not owner_id:
        return jsonify({"error": "owner_id required"}), 400
    session.sign_in(str(owner_id))
    return jsonify({"owner_id": current_owner()})


@app.route("/session", methods=["DELETE"])
def sign_out():
    session.sign_out()
    return jsonify({"owner_id": None})


# =============================================================================
# API ROUTES - TARIFF
# =============================================================================

@app.route("/tariff/rate", methods=["GET"])
def tariff_rate():
    """
    Marginal rate for a monthly usage.

    Example:
        GET /tariff/rate?usage=2500  ->  {"usage_kwh": 2500.0, "rate": 0.24, ...}
    """
    usage, error = parse_usage(request.args.get("usage"))
    if error:
        return jsonify({"error": error}), 400
    return jsonify({
        "usage_kwh": usage,
        "rate": calculator.rate_for_usage(usage),
        "currency": calculator.currency
    })


@app.route("/tariff/cost", methods=["GET"])
def tariff_cost():
    """
    Tiered cost for a monthly usage.

    Example:
        GET /tariff/cost?usage=2500  ->  {"usage_kwh": 2500.0, "rate": 0.24, "cost": 480.0, "currency": "SAR"}
    """
    usage, error = parse_usage(request.args.get("usage"))
    if error:
        return jsonify({"error": error}), 400
    return jsonify(calculator.quote(usage))


# =============================================================================
# API ROUTES - DEVICES
# =============================================================================

@app.route("/devices", methods=["GET"])
def list_devices():
    owner_id = current_owner()
    if not owner_id:
        return no_session()
    devices = device_store.get_devices_for_owner(owner_id)
    return jsonify({"devices": [device_view(d) for d in devices]})


@app.route("/devices/<device_id>", methods=["GET"])
def get_device(device_id):
    owner_id = current_owner()
    if not owner_id:
        return no_session()
    device = load_owned_device(device_store, device_id, owner_id)
    return jsonify(device_view(device.to_record()))


@app.route("/devices/<device_id>", methods=["PATCH"])
def update_device_settings(device_id):
    """
    Rename a device.

    Request Body (JSON):
        {"name": "Kitchen fridge"}
    """
    owner_id = current_owner()
    if not owner_id:
        return no_session()
    data = request.get_json(silent=True) or {}
    name = rename_device(device_store, device_id, owner_id, data.get("name"))
    return jsonify({"id": device_id, "name": name})


@app.route("/devices/<device_id>/power", methods=["POST"])
def toggle_device_power(device_id):
    owner_id = current_owner()
    if not owner_id:
        return no_session()
    status = toggle_power(device_store, device_id, owner_id)
    return jsonify({
        "id": device_id,
        "power_status": status,
        "message": f"Device turned {'on' if status else 'off'}"
    })


@app.route("/devices/<device_id>/limits", methods=["POST"])
def save_cost_limit(device_id):
    """
    Set a cost limit.

    Request Body (JSON):
        {"period": "daily", "amount": 5}
    """
    owner_id = current_owner()
    if not owner_id:
        return no_session()
    data = request.get_json(silent=True) or {}
    period = data.get("period", "")
    limit = set_cost_limit(device_store, device_id, owner_id, period, data.get("amount"))
    return jsonify({
        "id": device_id,
        "period": period,
        "limit": limit,
        "message": f"{period.capitalize()} limit set to {limit} {calculator.currency}"
    })


@app.route("/devices/<device_id>/limits", methods=["DELETE"])
def reset_cost_limit(device_id):
    """
    Reset one limit or all of them.

    Query Parameters:
        period: daily, weekly, monthly or all (default: all)
    """
    owner_id = current_owner()
    if not owner_id:
        return no_session()
    which = request.args.get("period", "all")
    periods = reset_limits(device_store, device_id, owner_id, which)
    return jsonify({"id": device_id, "reset": periods})


# =============================================================================
# API ROUTES - REPORT
# =============================================================================

@app.route("/report", methods=["GET"])
def report():
    owner_id = current_owner()
    if not owner_id:
        return no_session()
    devices = device_store.get_devices_for_owner(owner_id)
    return jsonify(summarize_devices(devices, calculator))


# =============================================================================
# API ROUTES - SIMULATION
# =============================================================================

@app.route("/simulation/status", methods=["GET"])
def simulation_status():
    return jsonify(simulator.status())


@app.route("/simulation/start", methods=["POST"])
def simulation_start():
    started = simulator.start()
    return jsonify({
        "message": "Simulation started" if started else "Simulation already running",
        **simulator.status()
    })


@app.route("/simulation/stop", methods=["POST"])
def simulation_stop():
    simulator.stop()
    return jsonify({"message": "Simulation stopped", **simulator.status()})


@app.route("/simulation/force", methods=["POST"])
def simulation_force():
    """
    Run one simulation tick now (the dashboard's refresh button).

    Returns 409 if a tick is already in progress in this process.
    """
    tick_report = simulator.force_update()
    if tick_report is None:
        return jsonify({"message": "Simulation already in progress"}), 409
    return jsonify({"message": "Forced update completed", "report": tick_report.to_dict()})


# =============================================================================
# API ROUTES - STORAGE / SNS STATUS
# =============================================================================

@app.route("/storage/status", methods=["GET"])
def storage_status():
    return jsonify({
        "dynamodb_enabled": USE_DYNAMODB,
        "table_name": getattr(device_store, "table_name", None),
        "local_file": str(device_store.path) if isinstance(device_store, LocalDeviceStore) else None
    })


@app.route("/sns/status", methods=["GET"])
def sns_status():
    return jsonify({
        "sns_enabled": USE_SNS,
        "topic_arn": sns_service.topic_arn if sns_service else None
    })


@app.route("/sns/subscribe", methods=["POST"])
def sns_subscribe():
    """
    Subscribe an email address to shutoff alerts.

    Request Body (JSON):
        {"email": "user@example.com"}
    """
    if not USE_SNS or not sns_service:
        return jsonify({"error": "SNS not enabled"}), 400

    data = request.get_json(silent=True)
    if not data or not data.get("email"):
        return jsonify({"error": "email required"}), 400

    email = data["email"]
    subscription_arn = sns_service.subscribe_email(email)

    if subscription_arn:
        return jsonify({
            "message": f"Subscription pending. Check {email} for confirmation link.",
            "subscription_arn": subscription_arn
        })
    return jsonify({"error": "Failed to subscribe"}), 500


# =============================================================================
# RUN THE SERVER
# =============================================================================

def start_background_simulation():
    if env_flag('SIMULATION_ENABLED', 'true'):
        print("SIMULATION MODE - Power consumption is being simulated")
        simulator.start()


if __name__ == "__main__":
    start_background_simulation()
    # use_reloader=False: the reloader would start a second simulator process
    app.run(debug=True, use_reloader=False)
