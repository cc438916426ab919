from setuptools import setup, find_packages
setup(
    name="rmp-facility-search",
    version="0.1.0",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    include_package_data=True,
    python_requires=">=3.10",
    install_requires=[
        "fastapi>=0.110",
        "pydantic>=2.0",
        "requests>=2.31",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "httpx>=0.25",
        ],
    },
    entry_points={
        'console_scripts': [
            'rmp_search=rmp_search.__main__:main'
        ]
    }
)
