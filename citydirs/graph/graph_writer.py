# -*- coding: utf-8 -*-
"""
Graph sinks for the transform stage.

Both writers accept graph objects one call at a time and must be called
sequentially; each call either completes or raises before the next one.

    NdjsonGraphWriter  - appends {type, obj} lines to objects.ndjson
    Neo4jGraphWriter   - MERGEs Person and Address nodes and IN relations
                         using the batched UNWIND pattern

Examples:
    with NdjsonGraphWriter(path) as writer:
        for graph_object in transformer.transform(records):
            writer.write_object(graph_object)

    with Neo4jGraphWriter(uri, user, password) as writer:
        writer.create_constraints()
        writer.write_object(graph_object)
"""
# Standard library
from collections import Counter
from pathlib import Path
from typing import Dict, List

# Third-party
from neo4j import GraphDatabase

# Local
from citydirs.utils.dataclasses import GraphObject
from citydirs.utils.io import dumps_record
from citydirs.utils.logger import get_logger

logger = get_logger(__name__)


class NdjsonGraphWriter:
    """
    Append-only NDJSON object log.

    The file is truncated when opened, so rerunning a stage on the same input
    produces the same file.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.counts: Counter = Counter()
        self._file = open(self.path, 'w', encoding='utf-8')

    def write_object(self, graph_object: GraphObject):
        self._file.write(dumps_record(graph_object.to_dict()) + '\n')
        self.counts[graph_object.type] += 1

    def close(self):
        if self._file.closed:
            return
        self._file.close()
        logger.info(
            f"Wrote {sum(self.counts.values())} graph objects to {self.path} "
            f"({dict(self.counts)})"
        )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class Neo4jGraphWriter:
    """
    Neo4j sink with batched UNWIND imports.

    Persons and relations are buffered and flushed every batch_size objects;
    log objects are only counted.
    """

    PERSON_QUERY = """
    UNWIND $batch AS p
    MERGE (n:Person {id: p.id})
    SET n.name = p.name,
        n.valid_since = p.validSince,
        n.valid_until = p.validUntil,
        n.page_num = p.pageNum,
        n.text = p.text,
        n.occupation = p.occupation
    """

    RELATION_QUERY = """
    UNWIND $batch AS r
    MATCH (p:Person {id: r.from})
    MERGE (a:Address {id: r.to})
    MERGE (p)-[:IN]->(a)
    """

    def __init__(self, uri: str, user: str, password: str, batch_size: int = 500):
        """
        Args:
            uri: Neo4j connection URI (e.g., bolt://localhost:7687)
            user: Username (typically 'neo4j')
            password: Database password
            batch_size: Objects per UNWIND batch
        """
        self.driver = GraphDatabase.driver(uri, auth=(user, password))
        self.batch_size = batch_size
        self.counts: Counter = Counter()
        self.persons: List[Dict] = []
        self.relations: List[Dict] = []
        self.closed = False
        logger.info(f"Connected to Neo4j at {uri}")

    def create_constraints(self):
        constraints = [
            "CREATE CONSTRAINT person_id IF NOT EXISTS FOR (p:Person) REQUIRE p.id IS UNIQUE",
            "CREATE CONSTRAINT address_id IF NOT EXISTS FOR (a:Address) REQUIRE a.id IS UNIQUE",
        ]
        with self.driver.session() as session:
            for constraint in constraints:
                session.run(constraint)
                logger.debug(f"Created: {constraint[:50]}...")
        logger.info(f"Created {len(constraints)} constraints")

    def write_object(self, graph_object: GraphObject):
        obj = graph_object.obj
        self.counts[graph_object.type] += 1

        if graph_object.type == 'object':
            data = obj.get('data', {})
            self.persons.append({
                'id': obj['id'],
                'name': obj.get('name'),
                'validSince': obj.get('validSince'),
                'validUntil': obj.get('validUntil'),
                'pageNum': data.get('pageNum'),
                'text': data.get('text'),
                'occupation': data.get('occupation'),
            })
        elif graph_object.type == 'relation':
            self.relations.append({'from': obj['from'], 'to': obj['to']})

        if len(self.persons) + len(self.relations) >= self.batch_size:
            self.flush()

    def flush(self):
        """Send buffered persons, then relations (which match on persons)."""
        if not self.persons and not self.relations:
            return

        with self.driver.session() as session:
            if self.persons:
                session.run(self.PERSON_QUERY, batch=self.persons)
            if self.relations:
                session.run(self.RELATION_QUERY, batch=self.relations)

        logger.debug(f"Flushed {len(self.persons)} persons, {len(self.relations)} relations")
        self.persons = []
        self.relations = []

    def close(self):
        if self.closed:
            return
        self.closed = True
        try:
            self.flush()
        finally:
            self.driver.close()
            logger.info(f"Neo4j import done ({dict(self.counts)}), connection closed")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
