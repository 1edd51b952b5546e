from setuptools import setup

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="ngo-operations-dashboard",
    version="1.0.0",
    description="NGO Operations Dashboard and Beneficiary Portal",
    long_description=long_description,
    long_description_content_type="text/markdown",
    py_modules=[
        'admin_views',
        'api_client',
        'app',
        'auth',
        'config',
        'donation_views',
        'dynamic_forms',
        'exports',
        'forms',
        'gunicorn_config',
        'health',
        'pagination',
        'payment_views',
        'portal',
        'rbac',
        'security',
        'view_helpers',
        'wsgi',
    ],
    include_package_data=True,
    install_requires=[
        'Flask>=2.3.3',
        'Flask-WTF>=1.2.1',
        'WTForms>=3.0.1',
        'Werkzeug>=2.3.7',
        'python-dotenv>=1.0.0',
        'requests>=2.31.0',
        'python-jose>=3.3.0',
        'fpdf2>=2.7.6',
        'gunicorn>=21.2.0',
    ],
    extras_require={
        'test': [
            'pytest>=7.4.0',
        ],
    },
    python_requires='>=3.9',
    classifiers=[
        "Programming Language :: Python :: 3",
        "Framework :: Flask",
        "Operating System :: OS Independent",
    ],
    entry_points={
        'console_scripts': [
            'ngo-dashboard=wsgi:main',
        ],
    },
)
