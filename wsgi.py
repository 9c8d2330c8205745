import os

from marketlens import create_app

# factory with the config named by FLASK_ENV (default "development")
app = create_app(os.getenv("FLASK_ENV", "development"))

if __name__ == "__main__":
    # important for Docker
    app.run(host="0.0.0.0", port=5000, debug=True)
