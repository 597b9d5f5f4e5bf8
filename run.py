"""Local development entry point.

Usage:
    python run.py

Serves the CRM API on port 5001 with the development config. For
anything else use the Flask CLI (``flask --app run db upgrade``,
``flask --app run seed-admin``).
"""

from dotenv import load_dotenv

load_dotenv()  # Load .env before anything else

from supreme_crm import create_app  # noqa: E402

app = create_app()

if __name__ == "__main__":
    app.run(debug=True, host="0.0.0.0", port=5001)
