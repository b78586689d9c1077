import logging

from flask import Flask, jsonify
from config import Config
from routes import booking_bp, slots_bp, payments_bp, webhook_bp

from models import db
from flask_migrate import Migrate
from services.engine import init_engine
from services.errors import BookingError
from services.sweeper import ExpirySweeper
from utils.auth_context import load_current_user
from utils.clock import utcnow

logger = logging.getLogger(__name__)


def create_app(config_object=Config, gateway=None, clock=utcnow):
    app = Flask(__name__)
    app.config.from_object(config_object)

    # Register routes
    app.register_blueprint(slots_bp)
    app.register_blueprint(booking_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(webhook_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    # Booking engine (validates BOOKING_* / PAYMENT_* settings)
    init_engine(app, gateway=gateway, clock=clock)

    @app.before_request
    def _load_user():
        load_current_user()

    @app.errorhandler(BookingError)
    def _booking_error(exc):
        if exc.status_code >= 500:
            logger.warning("booking_error", extra={"code": exc.code, "error": exc.message})
        return jsonify(exc.to_dict()), exc.status_code

    @app.get("/health")
    def health():
        return jsonify(status="ok"), 200

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp

    register_cli(app)

    if app.config.get("EXPIRY_SWEEP_ENABLED"):
        app.extensions["expiry_sweeper"] = ExpirySweeper(app)
        app.extensions["expiry_sweeper"].start()

    return app

#-------------------------
import click
from services.engine import get_engine
from services.sweeper import complete_finished, reap_expired
from utils.timeparse import parse_date

def register_cli(app):
    @app.cli.command("generate-slots")
    @click.argument("court_id", type=int)
    @click.argument("start_date")
    @click.option("--days", default=1, show_default=True, help="Number of consecutive days.")
    @click.option("--duration", "duration_minutes", type=int, default=None, help="Slot length in minutes.")
    def generate_slots(court_id, start_date, days, duration_minutes):
        """Generate a court's slots from its facility's operating hours."""
        try:
            counts = get_engine().slots.generate_range(
                court_id, parse_date(start_date), days,
                duration_minutes=duration_minutes, actor="cli",
            )
        except BookingError as exc:
            raise click.ClickException(exc.message)
        for day, count in counts.items():
            click.echo(f"{day}: {count} slots")

    @app.cli.command("reap-expired")
    def reap_expired_cmd():
        """Cancel PENDING bookings whose payment session has expired."""
        click.echo(f"Reaped {reap_expired(get_engine().bookings)} booking(s)")

    @app.cli.command("complete-bookings")
    def complete_bookings_cmd():
        """Mark confirmed bookings whose slot has ended as COMPLETED."""
        click.echo(f"Completed {complete_finished(get_engine().bookings)} booking(s)")

    @app.cli.command("run-sweeper")
    @click.option("--interval", type=int, default=None, help="Seconds between sweeps.")
    def run_sweeper(interval):
        """Run the expiry sweep in the foreground until interrupted."""
        sweeper = ExpirySweeper(app, interval=interval)
        click.echo(f"Sweeping every {sweeper.interval}s, Ctrl+C to stop")
        try:
            sweeper.run()
        except KeyboardInterrupt:
            sweeper.stop()

#-------------------------




if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
