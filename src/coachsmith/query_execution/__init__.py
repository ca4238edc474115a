from .sql_executor import PostgresQueryExecutor, QueryExecutor, to_json_safe

__all__ = ["PostgresQueryExecutor", "QueryExecutor", "to_json_safe"]
