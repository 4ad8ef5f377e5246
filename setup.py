from setuptools import setup, find_packages

setup(
    name="dispute-lib",
    version="0.1.0",
    description="Loan dispute reconciliation and user event aggregation library",
    packages=find_packages(exclude=["tests", "tests.*"]),
    package_data={
        'dispute_lib': ['local-config.yaml', 'schemas/*.json'],
    },
    include_package_data=True,
    install_requires=[
        'pyyaml>=6.0',
        'jsonschema>=4.17.0',
        'requests>=2.28.0',
    ],
    extras_require={
        'test': ['pytest>=7.0'],
    },
    python_requires='>=3.9',
)
