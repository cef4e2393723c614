from setuptools import setup, find_packages

setup(
    name='hostforge',
    version='0.1.0',
    packages=find_packages(exclude=['hostforge.tests']),
    include_package_data=True,
    package_data={
        'hostforge.modules.provision': ['templates/*.j2'],
    },
    install_requires=[
        'typer[all]',
        'paramiko',
        'pydantic>=2',
        'PyYAML',
        'jinja2',
        'tenacity',
        'cryptography',
        'python-dotenv',
    ],
    extras_require={
        'test': [
            'pytest',
        ],
    },
    entry_points={
        'console_scripts': [
            'hostforge=hostforge.cli:app'
        ]
    },
    author='Your Name',
    description='A CLI toolkit that provisions remote hosts into TLS-secured container engine hosts',
    classifiers=[
        'Programming Language :: Python :: 3',
        'Operating System :: OS Independent',
    ],
    python_requires='>=3.8',
)
