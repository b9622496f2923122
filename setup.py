from setuptools import setup, find_namespace_packages

setup(
    name="hitguard",
    version="0.1.0",
    description="Redis-backed rate limiters: fixed, sliding and floating windows and token bucket",
    packages=find_namespace_packages(include=["hitguard", "hitguard.*"]),
    python_requires=">=3.11",
    install_requires=[
        "redis>=5.0",
        "pydantic>=2.5",
        "pydantic-settings>=2.1",
        "fastapi>=0.110",
        "uvicorn>=0.27",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
            "fakeredis[lua]>=2.23",
            "httpx>=0.27",
        ],
    },
    entry_points={
        "console_scripts": [
            "hitguard=hitguard.app.main:run",
        ],
    },
)
