from setuptools import setup, find_namespace_packages

setup(
    name="pplx-search",
    version="0.1",
    packages=find_namespace_packages(where="src"),
    package_dir={"": "src"},
    url="",
    license="",
    author="",
    author_email="",
    description="Terminal client for the Perplexity API",
    python_requires=">=3.10",
    install_requires=[
        "click>=8,<8.2",
        "pydantic>=2",
        "python-dotenv",
        "requests",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "pplx=pplx_search.cli:main",
        ],
    },
)
