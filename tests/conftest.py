"""
Pytest configuration and shared fixtures for DDL dependency tests.
"""

import pytest

from ddl_dependency_parser.parsers.tokenizer import RegexTokenizer


SCHEMA_DDL = """
-- Core tables
CREATE TABLE customers (
    id NUMBER PRIMARY KEY,
    name VARCHAR2(100) DEFAULT 'n/a; none'
);

CREATE TABLE orders (
    id NUMBER PRIMARY KEY,
    cust_id NUMBER REFERENCES customers(id),
    parent_id NUMBER,
    CONSTRAINT fk_parent FOREIGN KEY (parent_id) REFERENCES orders(id)
);

CREATE TABLE order_lines (
    order_id NUMBER CONSTRAINT fk_ol FOREIGN KEY REFERENCES app.orders(id),
    amount NUMBER
);

CREATE TABLE audit_log (msg VARCHAR2(4000));

CREATE TABLE archive_orders AS SELECT * FROM orders WHERE 1 = 0;

CREATE OR REPLACE VIEW v_customer_orders AS
SELECT c.name, o.id
  FROM customers c
  JOIN orders o ON o.cust_id = c.id;

/* summary over the view */
CREATE MATERIALIZED VIEW mv_order_totals AS
SELECT order_id, SUM(amount) total FROM order_lines GROUP BY order_id;

CREATE OR REPLACE PROCEDURE close_order(p_id NUMBER) IS
BEGIN
    FOR r IN (SELECT order_id FROM order_lines WHERE order_id = p_id) LOOP
        NULL;
    END LOOP;
    IF p_id > 0 THEN
        BEGIN
            DELETE FROM orders WHERE id = p_id;
        END;
    END IF;
    INSERT INTO audit_log VALUES ('closed');
END close_order;
/

CREATE OR REPLACE PACKAGE order_api AS
    PROCEDURE touch(p_id NUMBER);
END order_api;
/

CREATE OR REPLACE PACKAGE BODY order_api AS
    PROCEDURE touch(p_id NUMBER) IS
    BEGIN
        UPDATE orders SET id = id WHERE id = p_id;
    END touch;
END order_api;
/

CREATE OR REPLACE TRIGGER trg_orders_audit
AFTER INSERT ON orders FOR EACH ROW
BEGIN
    INSERT INTO audit_log VALUES ('inserted');
END;
/

CREATE INDEX ix_orders_cust ON orders(cust_id);
"""


@pytest.fixture
def schema_ddl():
    """A small schema touching every object kind."""
    return SCHEMA_DDL


@pytest.fixture
def tokenize():
    """Tokenize text with the default provider."""
    tokenizer = RegexTokenizer()
    return tokenizer.tokenize


@pytest.fixture
def ddl_file(tmp_path):
    """The sample schema written to a UTF-8 file."""
    path = tmp_path / "schema.sql"
    path.write_text(SCHEMA_DDL, encoding='utf-8')
    return path
