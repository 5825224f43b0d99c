"""Setup module for building founderhmm."""


from Cython.Build import cythonize
from setuptools import Extension, setup

extensions = [Extension("founderhmm_utils", ["founderhmm/founderhmm_utils.pyx"])]

setup_args = dict(
    ext_modules=cythonize(
        extensions, compiler_directives={"language_level": 3, "profile": False}
    )
)
setup(**setup_args)
