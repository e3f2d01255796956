# setup.py
from setuptools import setup, find_packages
from pathlib import Path
this_directory = Path(__file__).parent
long_description = (this_directory / "README.md").read_text(encoding="utf-8")

setup(
    name="imgtrans",
    version="0.3.0",
    package_dir={"": "src"},
    packages=find_packages(where="src", include=["imgtrans", "imgtrans.*"]),
    author="Phuoc Nguyen",
    description="Find images in a web page, OCR them, translate the text and draw the translation back over the image.",
    long_description=long_description,
    long_description_content_type='text/markdown',
    python_requires=">=3.9",

    install_requires=[
        "pytesseract",
        "easyocr",
        "torch",
        "httpx",
        "tenacity",
        "beautifulsoup4",
        "python-slugify",
        "tqdm",
        "Pillow",
        "numpy"
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        'console_scripts': [
            'imgtrans=imgtrans.cli:main',
        ],
    },
)
