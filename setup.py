from setuptools import setup, find_packages

with open('requirements.txt') as f:
    requirements = f.readlines()

with open('test-requirements.txt') as f:
    test_requirements = f.readlines()

setup(name='deployment-service',
      description='Build and serve static sites from git repositories on demand',
      version='1.0.0',
      classifiers=[
          "Programming Language :: Python",
          "Programming Language :: Python :: 3",
          "Topic :: Software Development :: Build Tools"
      ],
      keywords='deployment build static hosting reverse proxy logs',
      license='MIT',
      packages=find_packages(exclude=['tests', 'tests.*']),
      include_package_data=True,
      zip_safe=False,
      python_requires='>=3.8',
      install_requires=requirements,
      tests_require=test_requirements,
      extras_require={'test': test_requirements},
      entry_points={
          'console_scripts': ['deployment_service = deployment_service.manage:cli',
                              'deployment_service_worker = deployment_service.worker.main:main']
      },
      )
