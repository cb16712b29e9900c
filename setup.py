from setuptools import setup, find_packages

setup(
    name='llm-switchboard',
    version='0.1.0',
    packages=find_packages(where='src'),
    package_dir={'': 'src'},
    include_package_data=True,
    description='Route completion and chat requests across interchangeable LLM backends.',
    install_requires=[
        'anyio>=3.7',
        'httpx>=0.24',
        'fastapi>=0.110',
        'pydantic>=2',
        'python-dotenv',
        'uvicorn[standard]>=0.22',
        'prometheus-client',
        'opentelemetry-api',
        'opentelemetry-sdk',
        'opentelemetry-exporter-otlp-proto-http',
        'opentelemetry-exporter-prometheus',
    ],
    extras_require={
        'test': [
            'pytest',
            'pytest-mock',
        ],
    },
    entry_points={
        'console_scripts': ['llm-switchboard=llm_switchboard.cli:main'],
    },
    classifiers=[
        'Programming Language :: Python :: 3',
        'License :: OSI Approved :: MIT License',
        'Operating System :: OS Independent',
    ],
    python_requires='>=3.10',
    zip_safe=False,
)
