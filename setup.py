from setuptools import setup, find_packages

setup(
    name="toco_planner",
    version="0.1.0",
    description="Quantization and transformation-ordering engine for model conversion",
    author="Your Name",
    author_email="your.email@example.com",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    install_requires=[
        "torch>=2.0.0",
        "numpy>=1.24.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.3.0",
        ],
    },
    python_requires=">=3.8",
)
