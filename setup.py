from setuptools import setup, find_packages

setup(
    name='library-automount',
    version='0.1.0',
    packages=find_packages(where='src'),
    package_dir={'': 'src'},
    python_requires='>=3.10',
    install_requires=[
        'psutil',
        'pyudev',
        'termcolor',
    ],
    extras_require={
        'test': ['pytest'],
    },
    entry_points={
        'console_scripts': [
            'library-automount=library_automount.cli:main',
        ],
    },
)
