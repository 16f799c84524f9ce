"""Secret Registry Meta information.
   Secret Registry stores opaque encrypted payloads and decides who may read them.
"""
__title__ = 'secret_registry'
__description__ = (
   'Secret Registry stores pre-encrypted secrets with per-record '
   'ownership, access grants and height-based expiration.'
)
__version__ = '0.3.0'
__copyright__ = 'Copyright (c) 2026 Secret Registry contributors'
__author__ = 'Secret Registry contributors'
__license__ = 'Apache-2.0'
