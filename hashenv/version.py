"""HashEnv Meta information.
   HashEnv stores per-project environment files and named secrets,
   encrypted at rest, with collaborator permissions and an audit trail.
"""
__title__ = 'hashenv'
__description__ = (
   'Encrypted, versioned and access-controlled store for '
   'environment files and project secrets.'
)
__version__ = '0.4.0'
__copyright__ = 'Copyright (c) 2025 HashEnv contributors'
__author__ = 'HashEnv contributors'
__license__ = 'Apache-2.0'
