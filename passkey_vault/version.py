"""Passkey Vault Meta information.
   Passkey Vault encrypts named secrets with keys derived from a WebAuthn
   PRF output and stores them behind signed, replay-resistant requests.
"""
__title__ = 'passkey_vault'
__description__ = (
   'Passkey Vault derives encryption and signing keys from a WebAuthn PRF '
   'output to protect and store user secrets.'
)
__version__ = '0.3.0'
__copyright__ = 'Copyright (c) 2025 Jesus Lara'
__author__ = 'Jesus Lara'
__author_email__ = 'jesuslarag@gmail.com'
__license__ = 'Apache-2.0'
__url__ = 'https://github.com/phenobarbital/passkey-vault'
