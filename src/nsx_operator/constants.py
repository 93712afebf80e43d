"""Constants for the NSX Operator."""

# API Groups
API_GROUP = "crd.nsx.vmware.com"
API_VERSION = "v1alpha1"
API_GROUP_VERSION = f"{API_GROUP}/{API_VERSION}"

NETOPERATOR_GROUP = "netoperator.vmware.com"
NETOPERATOR_VERSION = "v1alpha1"
NETOPERATOR_GROUP_VERSION = f"{NETOPERATOR_GROUP}/{NETOPERATOR_VERSION}"

# Resource Kinds
KIND_IP_ADDRESS_ALLOCATION = "IPAddressAllocation"
KIND_ADDRESS_BINDING = "AddressBinding"
KIND_SUBNET = "Subnet"
KIND_SUBNET_PORT = "SubnetPort"
KIND_NETWORK = "Network"
KIND_NAMESPACE = "Namespace"

# Plurals
PLURAL_IP_ADDRESS_ALLOCATIONS = "ipaddressallocations"
PLURAL_ADDRESS_BINDINGS = "addressbindings"
PLURAL_SUBNETS = "subnets"
PLURAL_SUBNET_PORTS = "subnetports"
PLURAL_NETWORKS = "networks"

# Metric resource types
METRIC_RES_TYPE_IP_ADDRESS_ALLOCATION = "ipaddressallocation"
METRIC_RES_TYPE_SUBNET = "subnet"
METRIC_RES_TYPE_NETWORK = "network"

# NSX resource types
NSX_RESOURCE_TYPE_IP_ADDRESS_ALLOCATION = "VpcIpAddressAllocation"
REALIZED_ENTITY_IP_ADDRESS_ALLOCATION = "RealizedVpcIpAddressAllocation"

# Tag scopes (correlation tags carried by every NSX object we create)
TAG_SCOPE_CLUSTER = "nsx-op/cluster"
TAG_SCOPE_VERSION = "nsx-op/version"
TAG_SCOPE_NAMESPACE = "nsx-op/namespace"
TAG_SCOPE_NAMESPACE_UID = "nsx-op/namespace_uid"
TAG_SCOPE_IP_ADDRESS_ALLOCATION_CR_NAME = "nsx-op/ipaddressallocation_name"
TAG_SCOPE_IP_ADDRESS_ALLOCATION_CR_UID = "nsx-op/ipaddressallocation_uid"
TAG_VERSION = "1.0.0"

# Store indexes
INDEX_NAMESPACED_NAME = "namespacedName"

# Annotations and labels
ANNOTATION_SHARED_VPC_NAMESPACE = "nsx.vmware.com/shared_vpc_namespace"
SHARED_VPC_SYSTEM_NAMESPACE = "kube-system"
ANNOTATION_ASSOCIATED_RESOURCE = "nsx.vmware.com/associated-resource"
LABEL_DEFAULT_NETWORK = "is-default-network"
LABEL_DEFAULT_NETWORK_VALUE = "true"
NETWORK_TYPE_NSXT_VPC = "nsx-t-vpc"

# IP address block visibility
VISIBILITY_EXTERNAL = "EXTERNAL"
VISIBILITY_PRIVATE = "PRIVATE"
VISIBILITY_PRIVATE_TGW = "PRIVATE_TGW"

# IP pools the allocator hands out from
POOL_EXTERNAL = "external"
POOL_PRIVATE = "private"

# Service account the operator itself runs as
NSX_OPERATOR_SA = "system:serviceaccount:vmware-system-nsx:ncp-svc-account"

# Admission operations
OPERATION_CREATE = "CREATE"
OPERATION_UPDATE = "UPDATE"
OPERATION_DELETE = "DELETE"

# Field Manager
FIELD_MANAGER = "nsx-operator"

# Condition Types
COND_READY = "Ready"

# Condition Reasons
REASON_IP_ADDRESS_ALLOCATION_READY = "IPAddressAllocationReady"
REASON_IP_ADDRESS_ALLOCATION_NOT_READY = "IPAddressAllocationNotReady"
REASON_POOL_EXHAUSTED = "IPPoolExhausted"
REASON_ALLOCATION_CONFLICT = "IPAllocationConflict"
REASON_INVALID_ALLOCATION = "InvalidAllocationRequest"
REASON_REALIZATION_TIMEOUT = "RealizationTimeout"
REASON_REALIZATION_FAILED = "RealizationFailed"

# Event Reasons
EVENT_REASON_SUCCESSFUL_UPDATE = "SuccessfulUpdate"
EVENT_REASON_FAIL_UPDATE = "FailUpdate"
EVENT_REASON_SUCCESSFUL_DELETE = "SuccessfulDelete"
EVENT_REASON_FAIL_DELETE = "FailDelete"

# NSX realized states
REALIZED_STATE_REALIZED = "REALIZED"
REALIZED_STATE_ERROR = "ERROR"
