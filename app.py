# app.py

import functools
import logging
import os
import signal
import sys

from dotenv import load_dotenv
from flask import Flask, Response, jsonify, redirect, render_template, request, url_for
from werkzeug.exceptions import HTTPException

from auth import StaticCredentialAuth
from geocoding import build_geocoder, get_address_from_coords
from ip_locator import IP_LOOKUP_TIMEOUT, IP_LOOKUP_URL, fetch_public_ip, resolve_client_ip
from reports import CSV_FILENAME, build_stats, paginate, records_to_csv
from store import LocationStore, StoreError, format_timestamp, utc_now

load_dotenv()

logger = logging.getLogger(__name__)

# --- Configuration ---
# Everything can be overridden by the environment (or a .env file)
DEFAULT_CLOUDINARY_URL = "https://api.cloudinary.com/v1_1/YOUR_CLOUD_NAME/image/upload"
DEFAULT_CLOUDINARY_UPLOAD_PRESET = "YOUR_UPLOAD_PRESET"


def load_config():
    return {
        "DATABASE_FILE": os.environ.get("DATABASE_FILE", "location_tracker.db"),
        "ADMIN_USER": os.environ.get("ADMIN_USER", "admin"),
        "ADMIN_PASS": os.environ.get("ADMIN_PASS", "admin123"),
        "PORT": int(os.environ.get("PORT", "3000")),
        "CLOUDINARY_URL": os.environ.get("CLOUDINARY_URL", DEFAULT_CLOUDINARY_URL),
        "CLOUDINARY_UPLOAD_PRESET": os.environ.get(
            "CLOUDINARY_UPLOAD_PRESET", DEFAULT_CLOUDINARY_UPLOAD_PRESET
        ),
        "OPENCAGE_API_KEY": os.environ.get("OPENCAGE_API_KEY", ""),
        "IP_LOOKUP_URL": os.environ.get("IP_LOOKUP_URL", IP_LOOKUP_URL),
        "IP_LOOKUP_TIMEOUT": float(os.environ.get("IP_LOOKUP_TIMEOUT", IP_LOOKUP_TIMEOUT)),
        "LOG_LEVEL": os.environ.get("LOG_LEVEL", "INFO"),
    }


def _field(data, name):
    value = data.get(name)
    if value is None:
        return ""
    return str(value).strip()


def _request_data():
    # JSON from the capture page's fetch(), form posts from plain HTML
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        data = request.form
    return data


def create_app(config=None, store=None, ip_lookup=None, authenticator=None):
    settings = load_config()
    settings.update(config or {})

    app = Flask(__name__)
    app.config.update(settings)

    if store is None:
        store = LocationStore(settings["DATABASE_FILE"])
    # Fatal on failure: the caller decides whether to exit
    store.init()

    if ip_lookup is None:
        ip_lookup = functools.partial(
            fetch_public_ip,
            url=settings["IP_LOOKUP_URL"],
            timeout=settings["IP_LOOKUP_TIMEOUT"],
        )
    if authenticator is None:
        authenticator = StaticCredentialAuth(settings["ADMIN_USER"], settings["ADMIN_PASS"])
    geocoder = build_geocoder(settings["OPENCAGE_API_KEY"])

    app.extensions["location_store"] = store

    # --- Capture page ---
    @app.route('/')
    def track():
        return render_template(
            'track.html',
            CLOUDINARY_URL=app.config["CLOUDINARY_URL"],
            CLOUDINARY_UPLOAD_PRESET=app.config["CLOUDINARY_UPLOAD_PRESET"],
        )

    # --- Capture submission ---
    @app.route('/save', methods=['POST'])
    def save():
        data = _request_data()
        lat, lon, image_url = _field(data, "lat"), _field(data, "lon"), _field(data, "imageUrl")

        if not lat or not lon or not image_url:
            return jsonify({"success": False, "error": "Missing required fields"}), 400

        ip = resolve_client_ip(request.headers, request.remote_addr, lookup=ip_lookup)
        address = get_address_from_coords(geocoder, lat, lon)

        try:
            record = store.create(lat=lat, lon=lon, ip=ip, image_url=image_url, address=address)
        except StoreError as e:
            app.logger.exception("Save error")
            return jsonify({"success": False, "error": str(e) or "Internal server error"}), 500

        app.logger.info("New verification saved: %s - %s,%s", ip, lat, lon)
        return jsonify({
            "success": True,
            "id": record["id"],
            "message": "Verification data saved successfully",
        })

    # --- Admin login ---
    @app.route('/admin')
    def admin():
        return render_template('login.html', error=request.args.get('error'))

    @app.route('/admin/login', methods=['POST'])
    def admin_login():
        data = _request_data()
        target = authenticator.login(data.get("username"), data.get("password"))
        if target is None:
            return jsonify({"success": False, "error": "Invalid credentials"}), 401
        return jsonify({"success": True, "redirect": target})

    # --- Dashboard ---
    @app.route('/admin/dashboard')
    def dashboard():
        try:
            listing = paginate(store, request.args.get('page'), request.args.get('limit'))
        except StoreError:
            app.logger.exception("Dashboard error")
            return "Error loading dashboard", 500
        return render_template('index.html', **listing)

    @app.route('/api/records')
    def list_records():
        try:
            listing = paginate(store, request.args.get('page'), request.args.get('limit'))
        except StoreError as e:
            app.logger.exception("Listing error")
            return jsonify({"success": False, "error": str(e)}), 500
        data = listing.pop("data")
        return jsonify({"success": True, "data": data, "pagination": listing})

    @app.route('/api/record/<record_id>')
    def get_record(record_id):
        try:
            record = store.find_by_id(record_id)
        except StoreError as e:
            return jsonify({"success": False, "error": str(e)}), 500
        if record is None:
            return jsonify({"success": False, "error": "Record not found"}), 404
        return jsonify({"success": True, "data": record})

    # --- Deletion ---
    @app.route('/delete/<record_id>', methods=['POST'])
    def delete_record(record_id):
        try:
            record = store.delete_by_id(record_id)
        except StoreError:
            app.logger.exception("Delete error")
            return "Error deleting record", 500
        if record is None:
            return jsonify({"success": False, "error": "Record not found"}), 404
        app.logger.info("Deleted record: %s", record["id"])
        return redirect(url_for('dashboard'))

    @app.route('/delete-all', methods=['POST'])
    def delete_all():
        try:
            deleted = store.delete_all()
        except StoreError:
            app.logger.exception("Delete all error")
            return "Error deleting all records", 500
        app.logger.info("Deleted %d records", deleted)
        return redirect(url_for('dashboard'))

    # --- Stats and export ---
    @app.route('/api/stats')
    def stats():
        try:
            data = build_stats(store)
        except StoreError as e:
            return jsonify({"success": False, "error": str(e)}), 500
        return jsonify({"success": True, "data": data})

    @app.route('/export/csv')
    def export_csv():
        try:
            csv_text = records_to_csv(store.find())
        except StoreError:
            app.logger.exception("Export error")
            return "Error exporting data", 500
        return Response(
            csv_text,
            mimetype="text/csv",
            headers={"Content-Disposition": f'attachment; filename="{CSV_FILENAME}"'},
        )

    @app.route('/health')
    def health():
        return jsonify({
            "status": "OK",
            "timestamp": format_timestamp(utc_now()),
            "database": "Connected" if store.ping() else "Disconnected",
        })

    # --- Last resort ---
    @app.errorhandler(Exception)
    def handle_error(e):
        if isinstance(e, HTTPException):
            return e
        app.logger.error("Server Error", exc_info=e)
        return "Something broke! Please try again later.", 500

    return app


def main():
    settings = load_config()
    logging.basicConfig(
        level=settings["LOG_LEVEL"].upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        app = create_app(settings)
    except StoreError as e:
        logger.error("Database connection error: %s", e)
        sys.exit(1)

    store = app.extensions["location_store"]

    def shutdown(signum, frame):
        logger.info("Server shutting down...")
        store.close()
        sys.exit(0)

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    port = settings["PORT"]
    logger.info("Server running on: http://localhost:%s", port)
    logger.info("Dashboard: http://localhost:%s/admin", port)
    logger.info("Tracking: http://localhost:%s", port)
    logger.info("Stats: http://localhost:%s/api/stats", port)
    app.run(host="0.0.0.0", port=port)


if __name__ == '__main__':
    main()
