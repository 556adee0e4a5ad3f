"""Classes representing Hammer's ``vmap`` map files.

Only the commonly used parts of the format are described here, other attributes are ignored.
Nodes of unrecognised types are produced as :py:class:`UnknownNode`, so newer files can still
be read.

    doc = dmxparser.parse('maps/example.vmap')
    root = vmap.read_vmap(doc)
    for node in root.world.children:
        ...
"""
from typing import IO, Any, Dict, List, Optional, Union
from uuid import UUID
import os

import attrs

from dmxparser.decoder import parse
from dmxparser.deserialize import (
    ANGLE, BOOL, FLOAT, INT, STRING, UINT64, VEC3,
    Array, Field, Identifier, Variant, deserialize, register,
)
from dmxparser.dmx import Angle, Document, ElementRef, ValueType, Vec3


__all__ = [
    'FORMAT_NAME', 'read_vmap', 'load', 'entity_properties',
    'StoredCamera', 'PlugList', 'ConnectionData', 'VariableSet', 'SelectionSet',
    'PolygonMeshDataStream', 'PolygonMeshDataArray', 'PolygonMesh',
    'MapEntity', 'MapGroup', 'MapMesh', 'MapWorld', 'VisibilityMgr',
    'UnknownNode', 'RootElement', 'MapNode',
]
FORMAT_NAME = 'vmap'


@attrs.frozen
class StoredCamera:
    """A camera viewpoint, saved in the editor."""
    lookat: Vec3
    position: Vec3


@attrs.frozen
class PlugList:
    """Inputs and outputs defined on an entity."""
    data_types: List[int]
    descriptions: List[str]
    names: List[str]
    plug_types: List[int]


@attrs.frozen
class ConnectionData:
    """An output connection from one entity to another."""
    output_name: str
    target_type: int
    target_name: str
    input_name: str
    override_param: str
    delay: float
    times_to_fire: int


@attrs.frozen
class VariableSet:
    """The variables defined by a map, used by prefabs."""
    names: List[str]
    type_names: List[str]
    values: List[str]
    types: Optional[List[int]] = None
    type_parameters: Optional[List[str]] = None
    choice_groups: List[int] = attrs.Factory(list)


@attrs.frozen
class SelectionSet:
    """A named group of selected objects."""
    name: str
    children: List['SelectionSet']
    set_type: Optional[int] = None
    # Index of the data element.
    data: Optional[int] = None


@attrs.frozen
class PolygonMeshDataStream:
    """A single named set of values in a mesh, like texture coordinates."""
    semantic_name: str
    semantic_index: int
    standard_attribute_name: str
    data_state_flags: int
    vertex_buffer_location: int


@attrs.frozen
class PolygonMeshDataArray:
    """The data streams for one kind of mesh component."""
    size: int
    streams: List[PolygonMeshDataStream]


@attrs.frozen
class PolygonMesh:
    """The half-edge representation of a mesh."""
    vertex_edge_indices: List[int]
    vertex_data_indices: List[int]
    edge_vertex_indices: List[int]
    edge_opposite_indices: List[int]
    edge_next_indices: List[int]
    edge_face_indices: List[int]
    face_edge_indices: List[int]
    materials: List[str]
    vertex_data: PolygonMeshDataArray
    face_data: PolygonMeshDataArray
    edge_data: PolygonMeshDataArray


@attrs.frozen(kw_only=True)
class MapNode:
    """Attributes common to all objects placed in the map."""
    name: str
    uuid: UUID
    origin: Vec3
    angles: Angle
    scales: Vec3
    node_id: int
    reference_id: int
    children: List[Union['MapNode', 'UnknownNode']]
    editor_only: bool
    force_hidden: bool
    transform_locked: Optional[bool] = None
    variable_names: List[str]
    variable_target_keys: List[str]


@attrs.frozen(kw_only=True)
class MapEntity(MapNode):
    """A point or brush entity."""
    # Index of the element holding the keyvalues, see entity_properties().
    properties: Optional[int]
    connections: List[ConnectionData]
    relay_plug_data: PlugList
    hit_normal: Vec3
    is_procedural: bool
    bone_names: Optional[List[str]] = None


@attrs.frozen(kw_only=True)
class MapGroup(MapNode):
    """A group of other nodes."""


@attrs.frozen(kw_only=True)
class MapMesh(MapNode):
    """A mesh placed in the world."""
    mesh: PolygonMesh
    cube_map_name: str
    light_group: str
    physics_type: str
    fade_min_dist: float
    fade_max_dist: float
    render_amt: int
    disable_shadows: Optional[bool] = None


@attrs.frozen(kw_only=True)
class MapWorld(MapNode):
    """The world, which contains everything in the map."""
    properties: Optional[int]
    connections: List[ConnectionData]
    relay_plug_data: PlugList
    map_usage_type: str
    next_decal_id: int
    fixup_entity_names: bool


@attrs.frozen(kw_only=True)
class VisibilityMgr(MapNode):
    """Tracks which nodes are hidden in the editor."""
    # Indexes of the nodes.
    nodes: List[Optional[int]]
    hidden_flags: List[int]


@attrs.frozen
class UnknownNode:
    """A node of a type not described here."""
    type: str
    name: str
    uuid: UUID


@attrs.frozen
class RootElement:
    """The root of a map file."""
    world: MapWorld
    visibility: VisibilityMgr
    default_camera: StoredCamera
    map_variables: VariableSet
    root_selection_set: SelectionSet
    editor_build: int
    editor_version: int
    grid_spacing: float
    snap_rotation_angle: int
    show_grid: bool
    show_3d_grid: bool
    is_prefab: bool
    item_file: str
    cordons_visible: bool
    is_cordoning: bool
    map_version: Optional[int] = None
    snap_to_grid: Optional[bool] = None
    cameras: Optional[int] = None
    referenced_mesh_snapshots: List[Optional[int]] = attrs.Factory(list)
    node_instance_data: List[Optional[int]] = attrs.Factory(list)


NODE = Variant(
    {
        'CMapEntity': MapEntity,
        'CMapGroup': MapGroup,
        'CMapMesh': MapMesh,
        'CMapWorld': MapWorld,
        'CVisibilityMgr': VisibilityMgr,
    },
    default=UnknownNode,
)
NODE_FIELDS = (
    Field('origin', VEC3),
    Field('angles', ANGLE),
    Field('scales', VEC3),
    Field('node_id', INT, attr='nodeID'),
    Field('reference_id', UINT64, attr='referenceID'),
    Field('children', Array(NODE)),
    Field('editor_only', BOOL, attr='editorOnly'),
    Field('force_hidden', BOOL),
    Field('transform_locked', BOOL, optional=True, attr='transformLocked'),
    Field('variable_names', Array(STRING), attr='variableNames'),
    Field('variable_target_keys', Array(STRING), attr='variableTargetKeys'),
)
# Fields shared by the world and entities.
ENTITY_FIELDS = (
    Field('properties', Identifier(), attr='entity_properties'),
    Field('connections', Array(ConnectionData), attr='connectionsData'),
    Field('relay_plug_data', PlugList, attr='relayPlugData'),
)


def _register_node(cls: type, *fields: Field) -> None:
    """Register a node class, including the common fields."""
    register(cls, *NODE_FIELDS, *fields, name_attr='name', uuid_attr='uuid')


register(
    StoredCamera,
    Field('lookat', VEC3),
    Field('position', VEC3),
)
register(
    PlugList,
    Field('data_types', Array(INT), attr='dataTypes'),
    Field('descriptions', Array(STRING)),
    Field('names', Array(STRING)),
    Field('plug_types', Array(INT), attr='plugTypes'),
)
register(
    ConnectionData,
    Field('output_name', STRING, attr='outputName'),
    Field('target_type', INT, attr='targetType'),
    Field('target_name', STRING, attr='targetName'),
    Field('input_name', STRING, attr='inputName'),
    Field('override_param', STRING, attr='overrideParam'),
    Field('delay', FLOAT),
    Field('times_to_fire', INT, attr='timesToFire'),
)
register(
    VariableSet,
    Field('names', Array(STRING), attr='variableNames'),
    Field('type_names', Array(STRING), attr='variableTypeNames'),
    Field('values', Array(STRING), attr='variableValues'),
    Field('types', Array(INT), optional=True, attr='variableTypes'),
    Field('type_parameters', Array(STRING), optional=True, attr='variableTypeParameters'),
    Field('choice_groups', Array(Identifier()), attr='m_ChoiceGroups'),
)
register(
    SelectionSet,
    Field('name', STRING, attr='selectionSetName'),
    Field('children', Array(SelectionSet)),
    Field('set_type', INT, optional=True, attr='setType'),
    Field('data', Identifier(), optional=True, attr='selectionSetData'),
)
register(
    PolygonMeshDataStream,
    Field('semantic_name', STRING, attr='semanticName'),
    Field('semantic_index', INT, attr='semanticIndex'),
    Field('standard_attribute_name', STRING, attr='standardAttributeName'),
    Field('data_state_flags', INT, attr='dataStateFlags'),
    Field('vertex_buffer_location', INT, attr='vertexBufferLocation'),
)
register(
    PolygonMeshDataArray,
    Field('size', INT),
    Field('streams', Array(PolygonMeshDataStream)),
)
register(
    PolygonMesh,
    Field('vertex_edge_indices', Array(INT), attr='vertexEdgeIndices'),
    Field('vertex_data_indices', Array(INT), attr='vertexDataIndices'),
    Field('edge_vertex_indices', Array(INT), attr='edgeVertexIndices'),
    Field('edge_opposite_indices', Array(INT), attr='edgeOppositeIndices'),
    Field('edge_next_indices', Array(INT), attr='edgeNextIndices'),
    Field('edge_face_indices', Array(INT), attr='edgeFaceIndices'),
    Field('face_edge_indices', Array(INT), attr='faceEdgeIndices'),
    Field('materials', Array(STRING)),
    Field('vertex_data', PolygonMeshDataArray, attr='vertexData'),
    Field('face_data', PolygonMeshDataArray, attr='faceData'),
    Field('edge_data', PolygonMeshDataArray, attr='edgeData'),
)
_register_node(
    MapEntity,
    *ENTITY_FIELDS,
    Field('hit_normal', VEC3, attr='hitNormal'),
    Field('is_procedural', BOOL, attr='isProceduralEntity'),
    Field('bone_names', Array(STRING), optional=True, attr='boneNames'),
)
_register_node(MapGroup)
_register_node(
    MapMesh,
    Field('mesh', PolygonMesh, attr='meshData'),
    Field('cube_map_name', STRING, attr='cubeMapName'),
    Field('light_group', STRING, attr='lightGroup'),
    Field('physics_type', STRING, attr='physicsType'),
    Field('fade_min_dist', FLOAT, attr='fademindist'),
    Field('fade_max_dist', FLOAT, attr='fademaxdist'),
    Field('render_amt', INT, attr='renderAmt'),
    Field('disable_shadows', BOOL, optional=True, attr='disableShadows'),
)
_register_node(
    MapWorld,
    *ENTITY_FIELDS,
    Field('map_usage_type', STRING, attr='mapUsageType'),
    Field('next_decal_id', INT, attr='nextDecalID'),
    Field('fixup_entity_names', BOOL, attr='fixupEntityNames'),
)
_register_node(
    VisibilityMgr,
    Field('nodes', Array(Identifier())),
    Field('hidden_flags', Array(INT), attr='hiddenFlags'),
)
register(UnknownNode, type_attr='type', name_attr='name', uuid_attr='uuid')
register(
    RootElement,
    Field('world', MapWorld),
    # Misspelt in the files.
    Field('visibility', VisibilityMgr, attr='visbility'),
    Field('default_camera', StoredCamera, attr='defaultcamera'),
    Field('map_variables', VariableSet, attr='mapVariables'),
    Field('root_selection_set', SelectionSet, attr='rootSelectionSet'),
    Field('editor_build', INT, attr='editorbuild'),
    Field('editor_version', INT, attr='editorversion'),
    Field('grid_spacing', FLOAT, attr='gridspacing'),
    Field('snap_rotation_angle', INT, attr='snaprotationangle'),
    Field('show_grid', BOOL, attr='showgrid'),
    Field('show_3d_grid', BOOL, attr='show3dgrid'),
    Field('is_prefab', BOOL, attr='isprefab'),
    Field('item_file', STRING, attr='itemFile'),
    Field('cordons_visible', BOOL, attr='m_bCordonsVisible'),
    Field('is_cordoning', BOOL, attr='m_bIsCordoning'),
    Field('map_version', INT, optional=True, attr='mapversion'),
    Field('snap_to_grid', BOOL, optional=True, attr='snaptogrid'),
    Field('cameras', Identifier(), optional=True, attr='3dcameras'),
    Field('referenced_mesh_snapshots', Array(Identifier()), attr='m_ReferencedMeshSnapshots'),
    Field('node_instance_data', Array(Identifier()), attr='nodeInstanceData'),
)


def read_vmap(document: Document) -> RootElement:
    """Convert a decoded map file."""
    if document.format_name != FORMAT_NAME:
        raise ValueError(f'Expected a {FORMAT_NAME} file, got "{document.format_name}"!')
    return deserialize(document, RootElement)


def load(file_or_path: Union[IO[bytes], str, 'os.PathLike[str]'], *, borrow: bool = False) -> RootElement:
    """Parse and convert a map file."""
    return read_vmap(parse(file_or_path, borrow=borrow))


def entity_properties(document: Document, properties: Optional[int]) -> Dict[str, Any]:
    """Read the keyvalues of an entity.

    Most values are strings, but some are stored as other types. Nested elements are returned
    as :py:class:`~dmxparser.dmx.ElementRef`.
    """
    if properties is None:
        return {}
    elem = document.element(ElementRef(properties))
    assert elem is not None
    result: Dict[str, Any] = {}
    for name, attr in elem.items():
        if attr.type is ValueType.BINARY and not attr.is_array:
            result[name] = bytes(attr.value)
        else:
            result[name] = attr.value
    return result
