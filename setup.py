from setuptools import setup, find_packages

setup(
    name="taskreminder",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*", "alembic", "alembic.*"]),
    python_requires=">=3.10",
    install_requires=[
        "fastapi",
        "uvicorn",
        "sqlalchemy>=2.0",
        "alembic",
        "psycopg2-binary",
        "python-dotenv",
        "pydantic>=2",
        "pydantic-settings",
        "requests",
        "celery",
        "prometheus-client",
        "prometheus-fastapi-instrumentator",
        "tzdata",
    ],
    extras_require={
        "test": [
            "pytest",
            "httpx",
        ],
    },
    entry_points={
        "console_scripts": [
            "taskreminder-worker=taskreminder.reminders.worker:main",
        ],
    },
)
