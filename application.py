import logging

import click
from flask import Flask, request, render_template, redirect, jsonify, session, flash, url_for

import accounts
import db
from config import Config, missing_keys
from impact import compute_impact
from reports import PageStateRegistry, ReportController
from verification import GeminiClient

logger = logging.getLogger(__name__)

PAGE_KEY = "report_page"


def create_app(config=None, store=None, classifier=None):
    """Build the web app; ``store`` and ``classifier`` default to MongoDB and Gemini."""
    logging.basicConfig(level=logging.INFO)

    application = Flask(__name__)
    application.config.from_object(Config)
    if config:
        application.config.update(config)

    for name in missing_keys(application.config):
        logger.warning("%s is not set, the features that need it are disabled", name)

    if store is None:
        store = db.connect(application.config)
    if classifier is None:
        classifier = GeminiClient.from_config(application.config)
    pages = PageStateRegistry(application.config["REPORT_STATE_LIMIT"], application.config["REPORT_STATE_TTL"])

    def discard_page():
        key = session.pop(PAGE_KEY, None)
        if key:
            pages.discard(key)

    def current_user():
        return accounts.resolve_user(store, accounts.current_email())

    def page_controller():
        key = session.get(PAGE_KEY)
        if not key:
            key = session[PAGE_KEY] = pages.new_key()
        return ReportController(pages.get(key), store, classifier, flash,
                                application.config["RECENT_REPORTS_LIMIT"])

    #home page
    @application.route("/")
    def home():
        try:
            reports = store.get_recent_reports(100)
            rewards = store.get_all_rewards()
            tasks = store.get_waste_collection_tasks(100)
        except db.StoreError as e:
            logger.error("Error fetching impact data: %s", e)
            reports, rewards, tasks = [], [], []
        return render_template("home.html", impact=compute_impact(reports, rewards, tasks))

    @application.route("/login", methods=["GET", "POST"])
    def login():
        if request.method == "POST":
            if accounts.login_user(request.form.get("email")):
                # a draft never carries over to another login
                discard_page()
                return redirect(url_for("report"))
            flash("Please enter your email", "error")
        return render_template("auth.html")

    @application.route("/logout")
    def logout():
        accounts.logout_user()
        discard_page()
        return redirect(url_for("login"))

    @application.route("/report")
    def report():
        user = current_user()
        if user is None:
            return redirect(url_for("login"))
        controller = page_controller()
        controller.load_recent()
        return render_template(
            "report.html",
            user=user,
            state=controller.state,
            maps_api_key=application.config["GOOGLE_MAPS_API_KEY"],
        )

    @application.route("/report/upload", methods=["POST"])
    def report_upload():
        if not accounts.current_email():
            return redirect(url_for("login"))
        controller = page_controller()
        controller.set_location(request.form.get("location"))
        controller.choose_file(request.files.get("file"))
        return redirect(url_for("report"))

    @application.route("/report/verify", methods=["POST"])
    def report_verify():
        if not accounts.current_email():
            return redirect(url_for("login"))
        controller = page_controller()
        controller.set_location(request.form.get("location"))
        controller.verify()
        return redirect(url_for("report"))

    @application.route("/report/location", methods=["POST"])
    def report_location():
        if not accounts.current_email():
            return jsonify({"error": "Not authenticated"}), 401
        data = request.get_json(silent=True) or {}
        controller = page_controller()
        controller.select_place(data.get("places") or [])
        return jsonify(location=controller.state.draft.location)

    @application.route("/report/submit", methods=["POST"])
    def report_submit():
        user = current_user()
        if user is None:
            return redirect(url_for("login"))
        controller = page_controller()
        controller.set_location(request.form.get("location"))
        controller.submit(user)
        return redirect(url_for("report"))

    @application.errorhandler(db.StoreError)
    def store_unavailable(e):
        flash("The database is not available right now. Please try again.", "error")
        return redirect(url_for("home"))

    @application.errorhandler(413)
    def file_too_large(e):
        flash("File is too large. Images up to 10MB are accepted.", "error")
        return redirect(url_for("report"))

    # own 404 page instead of the default one
    @application.errorhandler(404)
    def page_not_found(e):
        return render_template("404.html"), 404

    @application.cli.command("check-gemini")
    def check_gemini():
        """Check that the configured Gemini API key is accepted."""
        if classifier.check_api_key():
            click.echo("Gemini API key OK")
        else:
            raise click.ClickException("Gemini API key was rejected or is missing")

    return application


if __name__ == "__main__":
    create_app().run()
