from setuptools import setup, find_packages

setup(
    name='nodepilot',
    version='0.1.0',
    packages=find_packages(exclude=['nodepilot.tests']),
    include_package_data=True,
    install_requires=[
        'typer[all]',
        'fastapi',
        'uvicorn',
        'kubernetes',
        'pydantic>=2',
        'pyyaml',
        'python-dotenv',
        'urllib3',
    ],
    extras_require={
        'tests': [
            'pytest',
            'httpx',
        ],
    },
    entry_points={
        'console_scripts': [
            'nodepilot=nodepilot.cli:app'
        ]
    },
    author='Your Name',
    description='Safe cordon, drain, reboot and rolling fleet operations for Kubernetes nodes',
    classifiers=[
        'Programming Language :: Python :: 3',
        'Operating System :: OS Independent',
    ],
    python_requires='>=3.8',
)
