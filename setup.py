from setuptools import setup, find_packages

setup(
    name='calendar-mcp',
    version='0.1.0',
    packages=find_packages(where='src'),
    package_dir={'': 'src'},
    install_requires=[
        'pyyaml',
        'python-dotenv',
        'pydantic>=2',
        'click',
        'requests',
        'msal',
        'google-auth',
        'python-dateutil',
    ],
    extras_require={
        'dev': ['pytest'],
    },
    entry_points={
        'console_scripts': [
            'calendar-mcp=calendar_mcp.cli:main',
        ],
    },
)
