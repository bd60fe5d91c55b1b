from propertipro import create_app
from propertipro.celery_app import create_celery_app


flask_app = create_app()
celery = create_celery_app(flask_app)

# Registers the premium tasks on this app for `celery -A celery_app worker`.
import propertipro.tasks.premium_tasks  # noqa: E402,F401
