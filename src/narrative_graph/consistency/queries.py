"""Cypher used by the consistency checks. All inputs are bound as $story_id."""

STORY_EXISTS = """
MATCH (s:Story {id: $story_id})
RETURN s.id AS id
LIMIT 1
"""

# One row per (character, scene) appearance with its role annotation.
CHARACTER_ROLES = """
MATCH (s:Story {id: $story_id})-[:CONTAINS*]->(scene:Scene)
MATCH (c:Character)-[a:APPEARS_IN]->(scene)
WHERE a.role_in_scene IS NOT NULL OR a.arc_change = true
RETURN DISTINCT
    c.id AS character_id,
    c.name AS character_name,
    scene.id AS scene_id,
    scene.sequence AS sequence,
    a.role_in_scene AS role,
    coalesce(a.arc_change, false) AS arc_change
ORDER BY character_id, sequence
"""

TIMELINE_SCENES = """
MATCH (s:Story {id: $story_id})-[:CONTAINS*]->(scene:Scene)
WHERE scene.sequence IS NOT NULL AND scene.narrative_time IS NOT NULL
RETURN DISTINCT
    scene.id AS scene_id,
    scene.title AS title,
    scene.sequence AS sequence,
    scene.narrative_time AS narrative_time
ORDER BY sequence
"""

# Snapshots live on the APPEARS_IN edge as a JSON-encoded mapping.
CHARACTER_STATES = """
MATCH (s:Story {id: $story_id})-[:CONTAINS*]->(scene:Scene)
MATCH (c:Character)-[a:APPEARS_IN]->(scene)
WHERE a.character_state IS NOT NULL
RETURN DISTINCT
    c.id AS character_id,
    c.name AS character_name,
    scene.id AS scene_id,
    scene.sequence AS sequence,
    a.character_state AS state
ORDER BY character_id, sequence
"""

TRAIT_CHOICES = """
MATCH (s:Story {id: $story_id})-[:CONTAINS*]->(scene:Scene)
MATCH (c:Character)-[:APPEARS_IN]->(scene)
WHERE c.personality_traits IS NOT NULL
MATCH (scene)-[:CONTAINS|LEADS_TO]->(choice:Choice)
RETURN DISTINCT
    c.id AS character_id,
    c.name AS character_name,
    c.personality_traits AS traits,
    scene.id AS scene_id,
    scene.sequence AS sequence,
    choice.id AS choice_id,
    choice.text AS choice_text
ORDER BY character_id, sequence, choice_id
"""

CREATE_RULE = """
CREATE (r:ConsistencyRule {
    id: $id,
    name: $name,
    description: $description,
    category: $category,
    rule_logic: $rule_logic,
    enabled: $enabled,
    created_at: $created_at
})
RETURN r {.*} AS rule
"""

ENABLED_RULES = """
MATCH (r:ConsistencyRule)
WHERE r.enabled = true
RETURN r {.*} AS rule
ORDER BY r.created_at DESC
"""
