from signproof.utils.email_validation import is_valid_email, normalize_email

__all__ = [
    "is_valid_email",
    "normalize_email",
]
