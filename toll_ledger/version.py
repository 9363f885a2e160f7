"""Toll Ledger Meta information.
   Toll Ledger keeps toll transaction history in an encrypted local cache.
"""
__title__ = 'toll_ledger'
__description__ = (
   'Toll Ledger keeps toll transaction history in an encrypted '
   'local cache.'
)
__version__ = '0.3.0'
__copyright__ = 'Copyright (c) 2025 Toll Ledger developers'
__author__ = 'Toll Ledger developers'
__author_email__ = 'dev@toll-ledger.invalid'
__license__ = 'Apache-2.0'
__url__ = 'https://github.com/toll-ledger/toll-ledger'
