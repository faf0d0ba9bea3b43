import os

from setuptools import find_packages, setup

config_files = ['config/' + name for name in os.listdir('config')]
tests_require = ['pytest', 'pytest-cov', 'mock', 'pycodestyle', 'pylint',
                 'hypothesis', 'yamllint']
extras_require = {
    'test': tests_require,
}

setup(
    name='cloudscreen',
    version='1.0.0',
    description='Cloud, snow/ice and land/water pixel classification for AVHRR imagery',
    long_description=open('README.rst', 'r').read(),
    license='Apache License 2.0',
    packages=find_packages(exclude=['tests', 'tests.*']),
    package_data={'cloudscreen': ['auxdata/*.txt']},
    data_files=[('cloudscreen/config', config_files)],
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Science/Research",
        "License :: OSI Approved :: Apache Software License",
        "Programming Language :: Python :: 3",
        "Operating System :: OS Independent",
        "Intended Audience :: Developers",
        "Topic :: Scientific/Engineering :: Atmospheric Science",
        "Topic :: Scientific/Engineering :: Image Processing",
    ],
    python_requires='>=3.8',
    install_requires=[
        'numpy',
        'scipy',
        'xarray',
        'pandas',
        'ephem',
        'click',
        'pyyaml',
        'netCDF4',
    ],
    tests_require=tests_require,
    extras_require=extras_require,
    entry_points={
        'console_scripts': [
            'cloudscreen = cloudscreen.app:cli',
        ]
    },
)
