"""
Reserved field names and values of the search index schema.
"""

# Identity and grouping
IDDOC = "IDDOC"
GROUPFIELD = "GROUPFIELD"
IDDOC_PARENT = "IDDOC_PARENT"
IDDOC_TOPSTRUCT = "IDDOC_TOPSTRUCT"
IDDOC_OWNER = "IDDOC_OWNER"

# Persistent identifiers
PI = "PI"
PI_TOPSTRUCT = "PI_TOPSTRUCT"
PI_PARENT = "PI_PARENT"
PI_ANCHOR = "PI_ANCHOR"
URN = "URN"
IMAGEURN = "IMAGEURN"
IMAGEURN_OAI = "IMAGEURN_OAI"

# Document kinds
DOCTYPE = "DOCTYPE"
DOCSTRCT = "DOCSTRCT"
DOCSTRCT_TOP = "DOCSTRCT_TOP"
DOCSTRCT_SUB = "DOCSTRCT_SUB"
ISWORK = "ISWORK"
ISANCHOR = "ISANCHOR"
NUMVOLUMES = "NUMVOLUMES"
CURRENTNOSORT = "CURRENTNOSORT"
SOURCEDOCFORMAT = "SOURCEDOCFORMAT"
LABEL = "LABEL"
LOGID = "LOGID"
DEFAULT = "DEFAULT"
FULLTEXT = "FULLTEXT"
SUPERDEFAULT = "SUPERDEFAULT"
SUPERFULLTEXT = "SUPERFULLTEXT"

# Access
ACCESSCONDITION = "ACCESSCONDITION"
OPEN_ACCESS_VALUE = "OPENACCESS"

# Dates
DATECREATED = "DATECREATED"
DATEUPDATED = "DATEUPDATED"
DATEINDEXED = "DATEINDEXED"
DATEDELETED = "DATEDELETED"
SORT_DATEUPDATED = "SORT_DATEUPDATED"

# Pages
ORDER = "ORDER"
ORDERLABEL = "ORDERLABEL"
PHYSID = "PHYSID"
FILENAME = "FILENAME"
MIMETYPE = "MIMETYPE"
DATAREPOSITORY = "DATAREPOSITORY"
FULLTEXTAVAILABLE = "FULLTEXTAVAILABLE"
BOOL_IMAGEAVAILABLE = "BOOL_IMAGEAVAILABLE"
MDNUM_OWNERDEPTH = "MDNUM_OWNERDEPTH"
NUMPAGES = "NUMPAGES"
ORDERLABELFIRST = "ORDERLABELFIRST"
ORDERLABELLAST = "ORDERLABELLAST"
MD_ORDERLABELRANGE = "MD_ORDERLABELRANGE"

# Thumbnails
THUMBNAIL = "THUMBNAIL"
THUMBNAILREPRESENT = "THUMBNAILREPRESENT"
THUMBPAGENO = "THUMBPAGENO"
THUMBPAGENOLABEL = "THUMBPAGENOLABEL"

# Grouped metadata and events
METADATATYPE = "METADATATYPE"
MD_VALUE = "MD_VALUE"
EVENTTYPE = "EVENTTYPE"

# Field name prefixes
SORT_PREFIX = "SORT_"
BOOL_PREFIX = "BOOL_"
MDNUM_PREFIX = "MDNUM_"

# DOCTYPE values
DOCTYPE_DOCSTRCT = "DOCSTRCT"
DOCTYPE_PAGE = "PAGE"
DOCTYPE_SHAPE = "SHAPE"
DOCTYPE_METADATA = "METADATA"
DOCTYPE_EVENT = "EVENT"

GENERIC_ANCHOR_TYPE = "generic_anchor"
EMPTY_PAGE_LABEL = "-"
