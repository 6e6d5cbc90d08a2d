"""エンタイトルメント関連の例外"""


class EntitlementError(Exception):
    """業務エラーの基底クラス。status_code は HTTP 変換時に使用"""

    status_code = 400

    def __init__(self, message: str, **details):
        self.message = message
        self.details = details
        super().__init__(message)


class NotFoundError(EntitlementError):
    """ユーザー・プラン・購読が存在しない、または所有者が異なる"""

    status_code = 404


class ValidationError(EntitlementError):
    """入力値が不正 (日数・上限値・必須項目など)"""

    status_code = 400


class ConflictError(EntitlementError):
    """重複 (プラン名など) または参照中のため操作不可"""

    status_code = 409


class TrialAlreadyUsedError(EntitlementError):
    status_code = 400


class ConfigurationError(EntitlementError):
    """システムプラン (trial など) が未登録。運用設定の不備"""

    status_code = 500


class InvalidPlanError(EntitlementError):
    """プランは存在するが無効化されている"""

    status_code = 400


class StorageError(EntitlementError):
    """トランザクション失敗。ロールバック済みのため再実行可能"""

    status_code = 503


class PermissionDeniedError(EntitlementError):
    status_code = 403
