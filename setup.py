from setuptools import setup, find_namespace_packages

setup(
    name="mqtt_graph_bridge",
    version="1.0.0",
    # common/ and backend/ have no __init__.py
    packages=find_namespace_packages(include=["common", "common.*", "backend", "backend.*"]),
    install_requires=[
        "paho-mqtt>=2.0.0",  # CallbackAPIVersion.VERSION2
        "pydantic>=2.6.0",  # coerce_numbers_to_str
        "pyyaml>=6.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "pytest-asyncio>=0.21",
        ],
    },
    entry_points={
        "console_scripts": [
            "bridge-source=backend.source_service.main:run",
            "bridge-reaction=backend.reaction_service.main:run",
        ],
    },
    python_requires=">=3.8",
)
