import setuptools

# read the contents of your README file
from os import path
this_directory = path.abspath(path.dirname(__file__))
with open(path.join(this_directory, 'README.md'), encoding='utf-8') as f:
    long_description = f.read()

# read version without importing the package and its dependencies
version = {}
with open(path.join(this_directory, 'bluelinkconnect', '__version__.py'), encoding='utf-8') as f:
    exec(f.read(), version)

setuptools.setup(
    name='bluelinkconnect',
    version=version['__version__'],
    description='Communicate with Hyundai and Kia BlueLink services',
    long_description=long_description,
    long_description_content_type='text/markdown',
    packages=setuptools.find_packages(include=['bluelinkconnect', 'bluelinkconnect.*']),
    provides=["bluelinkconnect"],
    python_requires='>=3.8',
    install_requires=list(open(path.join(this_directory, "requirements.txt")).read().strip().split("\n")),
    extras_require={
        'test': [
            'pytest',
            'pytest-asyncio',
            'aioresponses',
            # aioresponses 0.7.9 is incompatible with aiohttp 3.14 (ClientResponse stream_writer)
            'aiohttp<3.14',
        ],
    },
)
