"""Fleet Migration Tool

Applies one scripted change to every repository of a GitHub organization,
delivering it as a branch, a commit and a pull request per repository.
"""

__version__ = '0.1.0'
__author__ = 'Fleet Migration Team'
__email__ = 'team@example.com'

from .cli import main

__all__ = ['main']
