from protectselected import Entity, SubEntity

ENTITY_LIST = [
    Entity(),
    SubEntity(),
]
