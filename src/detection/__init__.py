from .classifier import TransactionClassifier, account_keys, fee_payer

__all__ = [
    'TransactionClassifier', 'account_keys', 'fee_payer'
]
