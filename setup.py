from setuptools import setup, find_packages


with open('README.rst') as readme_file:
    readme = readme_file.read()

# requirements
install_requires = list(x.strip() for x in open('requirements.txt') if x.strip())

# dev requirements
tests_require = list(x.strip() for x in open('dev_requirements.txt') if x.strip())

version = '0.1.0'

setup(
    name="mptbench",
    packages=find_packages(".", include=['mptbench', 'mptbench.*']),
    description='Merkle Patricia state trie benchmark on LevelDB',
    long_description=readme,
    install_requires=install_requires,
    tests_require=tests_require,
    extras_require={
        'test': tests_require,
    },
    entry_points={
        'console_scripts': [
            'mpt-bench=mptbench.cli:main',
        ],
    },
    version=version,
    python_requires='>=3.8',
    classifiers=[
        'Intended Audience :: Developers',
        'Natural Language :: English',
        'Programming Language :: Python :: 3',
    ],
)
