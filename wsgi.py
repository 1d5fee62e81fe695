from gps_dashboard import create_app

app = create_app()

# gunicorn -w 1 wsgi:app
# Set IS_SCHEDULER=1 on exactly one instance so the cache sweep runs once.
