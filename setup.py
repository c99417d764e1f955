"""Install the user account service."""

from setuptools import setup, find_packages

setup(
    name='useraccounts',
    version='0.1.0',
    packages=find_packages(include=['useraccounts', 'useraccounts.*'],
                           exclude=['*test*']),
    package_data={'useraccounts': ['config.py']},
    install_requires=[
        "flask",
        "flask-sqlalchemy",
        "sqlalchemy",
        "pyjwt",
        "redis",
        "fakeredis[lua]",
        "argon2-cffi",
        "wtforms",
        "email-validator",
        "retry",
        "pytz",
        "python-dateutil",
        "werkzeug"
    ],
    extras_require={
        'test': ["pytest", "hypothesis"]
    },
    zip_safe=False
)
