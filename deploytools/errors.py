"""
Errors raised by the deployment helpers
"""


class DeployError(Exception):
    pass


class TransactionFailed(DeployError):
    """Transaction was mined but reverted"""

    def __init__(self, tx_hash, receipt=None):
        self.tx_hash = tx_hash
        self.receipt = receipt
        super().__init__(f"Transaction {tx_hash} failed")


class ProxyGovernorMismatch(DeployError):
    pass


class ProposalStateError(DeployError):
    pass


class UnsupportedNetwork(DeployError):
    pass


class ArtifactNotFound(DeployError):
    pass


class DeploymentNotFound(DeployError):
    pass
