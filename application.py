"""
Elastic Beanstalk entry point for the eTuition FastAPI application.
Elastic Beanstalk looks for a module-level 'application' object.
"""

from etuition.config import settings
from etuition.main import app

application = app

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(application, host=settings.app_host, port=settings.app_port)
