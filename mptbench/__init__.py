# -*- coding: utf-8 -*-
# ############# version ##################
from importlib.metadata import version, PackageNotFoundError
# Import slogging to patch logging as soon as possible
from . import slogging  # noqa


try:
    __version__ = version('mptbench')
except PackageNotFoundError:
    __version__ = 'undefined'

# ########### endversion ##################
