from setuptools import setup, find_packages

setup(
    name="coop-ledger",
    version="0.1.0",
    description="Cooperative savings, loan and profit-distribution ledger",
    packages=find_packages(exclude=["tests", "tests.*"]),
    package_data={
        'coop_ledger': ['local-config.yaml', 'schemas/*.json'],
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
    entry_points={
        'console_scripts': [
            'coop-ledger-rpc=coop_ledger.jsonrpc_server:main',
        ],
    },
    python_requires='>=3.9',
)
