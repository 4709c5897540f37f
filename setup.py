from setuptools import setup, find_packages

setup(name='childproc',
      version='0.0.1',
      description='Portable child processes with piped, line-oriented standard streams, on POSIX and Windows',
      classifiers=[
          "Programming Language :: Python :: 3",
          "License :: OSI Approved :: MIT License",
          "Operating System :: POSIX",
          "Operating System :: Microsoft :: Windows",
      ],
      keywords='subprocess process spawn pipe',
      license='MIT',
      python_requires='>=3.8',
      packages=find_packages(include=['childproc', 'childproc.*']),
      install_requires=['outcome'],
      extras_require={'test': ['pytest']},
)
