from setuptools import find_packages, setup

setup(
    name='rayhunter-deploy',
    version='0.3.0',
    description='Build and deploy Rayhunter to Orbic-class modems over adb and serial',
    author='',
    author_email='',
    packages=find_packages(include=['rhdeploy', 'rhdeploy.*']),
    py_modules=['build_and_deploy'],
    python_requires='>=3.11',
    install_requires=[
        'aiohttp',
        'marshmallow>=3.13',
        'msgspec',
        'psutil',
        'tenacity',
        'transitions',
        'uvloop',
    ],
    extras_require={
        'test': [
            'pytest',
            'pytest-asyncio',
        ],
    },
    entry_points={
        'console_scripts': [
            'rayhunter-deploy=rhdeploy.deployer:main',
        ],
    },
    classifiers=[
        'Programming Language :: Python :: 3',
        'Operating System :: POSIX :: Linux',
        'Operating System :: MacOS',
    ],
)
