# !/usr/bin/env python


def main():
    from setuptools import find_packages, setup

    version_dict = {}
    init_filename = "meshxfer/version.py"
    exec(
        compile(open(init_filename).read(), init_filename, "exec"),
        version_dict)

    setup(name="meshxfer",
          version=version_dict["VERSION_TEXT"],
          description=("Rendezvous-based parallel transfer of field data "
                       "between independently partitioned meshes"),
          long_description=open("README.md").read(),
          long_description_content_type="text/markdown",
          author="CEESD",
          author_email="inform@tiker.net",
          license="MIT",
          classifiers=[
              "Development Status :: 3 - Alpha",
              "Intended Audience :: Developers",
              "Intended Audience :: Science/Research",
              "License :: OSI Approved :: MIT License",
              "Natural Language :: English",
              "Programming Language :: Python",
              "Programming Language :: Python :: 3",
              "Topic :: Scientific/Engineering",
              "Topic :: Scientific/Engineering :: Mathematics",
              "Topic :: Software Development :: Libraries",
              "Topic :: Utilities",
              ],

          packages=find_packages(include=["meshxfer", "meshxfer.*"]),

          python_requires="~=3.8",

          install_requires=[
              "mpi4py>=3",
              "numpy",
              "pytools>=2018.5.2",
              "pytest>=2.3",
              "logpyle",
          ],

          extras_require={
              "test": ["pytest>=2.3", "psutil"],
          },

          package_data={"meshxfer": ["py.typed"]},

          include_package_data=True,)


if __name__ == "__main__":
    main()
