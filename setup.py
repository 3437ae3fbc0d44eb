from setuptools import setup, find_packages
import re

VERSIONFILE="asystatic/_version.py"
verstrline = open(VERSIONFILE, "rt").read()
VSRE = r"^__version__ = ['\"]([^'\"]*)['\"]"
mo = re.search(VSRE, verstrline, re.M)
if mo:
    verstr = mo.group(1)
else:
    raise RuntimeError("Unable to find version string in %s." % (VERSIONFILE,))


setup(
	# Application name:
	name="asystatic",

	# Version number (initial):
	version=verstr,

	# Packages
	packages=find_packages(),

	# Include additional files into the package
	include_package_data=True,

	zip_safe = True,
	#
	description="Asyncio static file server with conditional and range request support",
	long_description="",

	python_requires='>=3.10',
	classifiers=[
		"Programming Language :: Python :: 3.10",
		"License :: OSI Approved :: MIT License",
		"Operating System :: OS Independent",
	],
	install_requires=[
		'cryptography',
		'h11>=0.14.0',
	],
	extras_require={
		'test': [
			'pytest',
		],
	},
	entry_points={
		'console_scripts': [
			'asystatic = asystatic.examples.staticserver:main',
		],
	}
)
