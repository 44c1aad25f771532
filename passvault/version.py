"""PassVault Meta information.
   PassVault keeps named credentials encrypted at rest behind a master passphrase.
"""
__title__ = 'passvault'
__description__ = (
   'Local credential vault with master-passphrase key derivation, '
   'AEAD encryption and session lock/unlock.'
)
__version__ = '0.1.0'
__license__ = 'Apache-2.0'
