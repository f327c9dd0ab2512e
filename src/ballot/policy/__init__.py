from ballot.policy.resolver import PolicyResolver

__all__ = ["PolicyResolver"]
